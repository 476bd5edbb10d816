"""Fixtures that build shared graphs on the real repositories."""
import pytest

from shutterlink.container import ServiceSet
from shutterlink.domain.models import Principal


@pytest.fixture(scope="function")
def client_principal(client_account: tuple[Principal, str]) -> Principal:
    return client_account[0]


@pytest.fixture(scope="function")
def client_secret(client_account: tuple[Principal, str]) -> str:
    return client_account[1]


@pytest.fixture(scope="function")
def shared_collection(services: ServiceSet, photographer: Principal, collection: dict,
                      photo: dict, client_principal: Principal) -> dict:
    """``collection`` (holding ``photo``) shared with the client."""
    services.sharing.share_collection(photographer, collection["id"], client_principal.id)
    return collection


@pytest.fixture(scope="function")
def guest_share(services: ServiceSet, shared_collection: dict, photo: dict,
                client_principal: Principal) -> dict:
    """The client shares ``photo`` with a new guest."""
    return services.sharing.share_guest_photos(
        client_principal, "bob@example.com", [photo["share_token"]], guest_name="Bob"
    )

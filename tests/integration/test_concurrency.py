"""Integration tests for concurrent writers on separate connections.

Every worker opens its own SQLite connection and service set, then
starts together with the others behind a barrier.
"""
import threading
from collections import Counter
from dataclasses import replace
from datetime import timedelta

import pytest

from shutterlink.database import connect
from shutterlink.domain.models import EdgeKind, EntityKind
from shutterlink.errors import ResourceNotFound, SessionInvalid
from tests.conftest import PHOTOGRAPHER_PASSWORD, make_image_bytes


def run_together(db_path, container, *calls):
    """Run each ``call(services)`` on its own thread and connection.

    Returns:
        One ``(value, error)`` pair per call, in call order
    """
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def worker(index, call):
        conn = connect(db_path)
        try:
            services = container.services(conn)
            barrier.wait()
            try:
                outcomes[index] = (call(services), None)
            except Exception as exc:
                outcomes[index] = (None, exc)
        finally:
            conn.close()

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    assert all(not thread.is_alive() for thread in threads)
    return outcomes


@pytest.fixture
def second_photo(services, photographer, collection):
    return services.catalog.create_photo(
        photographer, collection["id"], make_image_bytes("green"), "image/jpeg", title="Vows"
    )


class TestConcurrentSweeps:

    def test_overlapping_sweeps_purge_each_entity_once(self, services, db_path, container, admin,
                                                        photographer, guest_share, photo, collection,
                                                        client_principal):
        # Arrange
        loose = services.catalog.create_photo(
            photographer, collection["id"], make_image_bytes("navy"), "image/jpeg"
        )
        services.lifecycle.request_deletion(photographer, "photo", loose["id"], "cull")
        entity = services.lifecycle.request_deletion(admin, "photographer", photographer.id, "closed")
        due = entity["scheduled_purge_at"] + timedelta(seconds=1)

        # Act
        outcomes = run_together(
            db_path, container,
            lambda s: s.lifecycle.sweep(now=due),
            lambda s: s.lifecycle.sweep(now=due),
        )

        # Assert
        assert [error for _, error in outcomes] == [None, None]
        merged = Counter()
        for summary, _ in outcomes:
            assert summary.failures == []
            merged.update(summary.purged)
        assert dict(merged) == {
            "photographer": 1, "client": 1, "guest": 1, "collection": 1, "photo": 2,
        }
        assert services.lifecycle.sweep(now=due).total_purged == 0

    def test_sweep_racing_restore_keeps_tree_whole(self, services, db_path, container, photographer,
                                                   collection, photo, second_photo):
        # Arrange
        entity = services.lifecycle.request_deletion(photographer, "collection", collection["id"], "done")
        due = entity["scheduled_purge_at"]

        # Act
        (summary, sweep_error), (_, restore_error) = run_together(
            db_path, container,
            lambda s: s.lifecycle.sweep(now=due),
            lambda s: s.lifecycle.restore("collection", collection["id"]),
        )

        # Assert
        assert sweep_error is None
        assert summary.failures == []
        repo = services.lifecycle.repo
        survivors = [
            repo.get(EntityKind.COLLECTION, collection["id"]),
            repo.get(EntityKind.PHOTO, photo["id"]),
            repo.get(EntityKind.PHOTO, second_photo["id"]),
        ]
        if restore_error is None:
            assert summary.total_purged == 0
            assert all(each is not None and each["active"] is True for each in survivors)
        else:
            assert isinstance(restore_error, ResourceNotFound)
            assert summary.purged == {"collection": 1, "photo": 2}
            assert survivors == [None, None, None]


def test_concurrent_guest_shares_converge_on_one_guest(services, db_path, container, conn,
                                                       shared_collection, photo, second_photo,
                                                       client_principal):
    # Arrange
    first_set = [photo["share_token"]]
    second_set = [second_photo["share_token"]]

    # Act
    outcomes = run_together(
        db_path, container,
        lambda s: s.sharing.share_guest_photos(client_principal, "carol@example.com", first_set),
        lambda s: s.sharing.share_guest_photos(client_principal, "carol@example.com", second_set),
    )

    # Assert
    assert [error for _, error in outcomes] == [None, None]
    results = [result for result, _ in outcomes]
    assert sorted(result["created"] for result in results) == [False, True]
    assert results[0]["guest"].id == results[1]["guest"].id
    assert len(services.sharing.list_guests(client_principal)) == 1
    assert conn.execute("SELECT COUNT(*) FROM guests").fetchone()[0] == 1

    guest_id = results[0]["guest"].id
    granted = {edge["from_id"] for edge in services.permissions.edge_repo.list_to(EdgeKind.PHOTO_ACCESS, guest_id)}
    assert granted in ({photo["id"]}, {second_photo["id"]})


def test_concurrent_rotations_of_one_session(services, db_path, container, photographer):
    # Arrange
    login = services.auth.login(None, "studio-north", PHOTOGRAPHER_PASSWORD)
    rotating = replace(container, rotate_sessions=True)

    # Act
    outcomes = run_together(
        db_path, rotating,
        lambda s: s.auth.refresh(login.session_id),
        lambda s: s.auth.refresh(login.session_id),
    )

    # Assert
    winners = [result for result, error in outcomes if error is None]
    losers = [error for _, error in outcomes if error is not None]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], SessionInvalid)
    assert winners[0]["session_id"] != login.session_id
    assert len(services.sessions.list_sessions(photographer.id)) == 1
    assert services.sessions.refresh(winners[0]["session_id"])

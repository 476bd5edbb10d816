"""Application layer - business logic services.

Services are independent of HTTP/FastAPI and can be tested in isolation.
"""

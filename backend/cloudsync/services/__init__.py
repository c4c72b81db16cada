"""Sync protocol services.

Each module owns one component of the engine; routers and scheduled jobs call
into them with an explicit SQLAlchemy session.
"""

# Overview: Flask extension instances for database, migrations and Redis.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis


class RedisStore:
    """
    Holds one Redis client per Flask app under app.extensions["redis"].

    The client backs the session routing cache and the tenant event channel.
    Neither is authoritative: the relational store is the source of truth.
    """

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["redis"] = redis.Redis.from_url(
            app.config["REDIS_URL"],
            decode_responses=True,
            socket_timeout=app.config["REDIS_SOCKET_TIMEOUT"],
            socket_connect_timeout=app.config["REDIS_SOCKET_TIMEOUT"],
        )

    @property
    def client(self) -> redis.Redis:
        return current_app.extensions["redis"]


db = SQLAlchemy()
migrate = Migrate()
redis_store = RedisStore()

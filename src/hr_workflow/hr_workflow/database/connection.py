from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import mysql.connector
from mysql.connector.constants import ClientFlag


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str


class DatabaseConnection:
    """DB connection factory.

    Note: We create short-lived connections per operation. Inside an
    ``atomic()`` block every cursor on the same thread shares one connection
    and one transaction.
    """

    def __init__(self, config: DBConfig):
        self._config = config
        self._local = threading.local()

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            autocommit=False,
            # rowcount reports matched rows so no-op updates still count as hits.
            client_flags=[ClientFlag.FOUND_ROWS],
        )

    def current(self):
        """Connection of the enclosing atomic block, if any."""
        return getattr(self._local, "conn", None)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self.current() is not None:
            # Nested blocks join the outer transaction.
            yield
            return

        conn = self.connect()
        self._local.conn = conn
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()


def config_from_dict(db_config: dict) -> DBConfig:
    return DBConfig(
        host=str(db_config.get("host", "localhost")),
        port=int(db_config.get("port", 3306)),
        user=str(db_config.get("user", "root")),
        password=str(db_config.get("password", "")),
        database=str(db_config.get("database", "hr_workflow")),
    )

"""
MySQL database service using mysql-connector-python.

Databases, users and grants are created over a pooled connection. SQL
dumps are streamed through the ``mysql`` command-line client, which
handles the delimiter changes and client commands found in dump files.
"""

import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mysql.connector import Error as MySQLError
from mysql.connector import errorcode
from mysql.connector.pooling import MySQLConnectionPool

from hosting_migrator.core.exceptions import ItemMigrationError, ServiceUnavailableError
from hosting_migrator.services.base import DatabaseService

logger = logging.getLogger(__name__)

# errors meaning the server itself could not be used
CONNECTION_ERRORS = {
    errorcode.CR_CONNECTION_ERROR,
    errorcode.CR_CONN_HOST_ERROR,
    errorcode.CR_UNKNOWN_HOST,
    errorcode.CR_SERVER_GONE_ERROR,
    errorcode.CR_SERVER_LOST,
    errorcode.ER_ACCESS_DENIED_ERROR,
    errorcode.ER_DBACCESS_DENIED_ERROR,
}

PRIVILEGE_PATTERN = re.compile(r"^[A-Z][A-Z ]*$")

Statement = Tuple[str, Sequence[Any]]


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def normalize_privileges(username: str, privileges: List[str]) -> List[str]:
    normalized = []
    for privilege in privileges or ["ALL"]:
        privilege = privilege.strip().upper()
        if not PRIVILEGE_PATTERN.match(privilege):
            raise ItemMigrationError(f"Invalid privilege for {username}: {privilege}")
        normalized.append("ALL PRIVILEGES" if privilege == "ALL" else privilege)
    return normalized


class MySQLDatabaseService(DatabaseService):
    """
    Creates databases and users on a destination MySQL server.

    Account names, hosts and passwords are always sent as query
    parameters; only database identifiers and validated privilege names
    are written into the statement text.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 3306,
        admin_user: str = "root",
        admin_password: Optional[str] = None,
        pool_size: int = 5,
        connection_timeout: int = 10,
        mysql_binary: str = "mysql"
    ):
        self.host = host
        self.port = port
        self.admin_user = admin_user
        self.admin_password = admin_password
        self.pool_size = pool_size
        self.connection_timeout = connection_timeout
        self.mysql_binary = mysql_binary
        self._pool: Optional[MySQLConnectionPool] = None
        self._slots = asyncio.Semaphore(pool_size)

    def _connection_config(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'user': self.admin_user,
            'password': self.admin_password or "",
            'charset': 'utf8mb4',
            'autocommit': False,
            'connection_timeout': self.connection_timeout,
            'use_unicode': True,
            'sql_mode': 'TRADITIONAL',
        }

    def _get_pool(self) -> MySQLConnectionPool:
        if self._pool is None:
            self._pool = MySQLConnectionPool(
                pool_name="hosting_migrator",
                pool_size=self.pool_size,
                pool_reset_session=True,
                **self._connection_config()
            )
            logger.info(f"Connected to destination MySQL server: {self.host}:{self.port}")
        return self._pool

    @staticmethod
    def _translate(error: MySQLError, action: str) -> Exception:
        if error.errno in CONNECTION_ERRORS:
            return ServiceUnavailableError(
                f"MySQL server unavailable: {error}",
                details={"errno": error.errno}
            )
        return ItemMigrationError(f"Failed to {action}: {error}", details={"errno": error.errno})

    def _execute_blocking(self, statements: List[Statement]) -> None:
        conn = self._get_pool().get_connection()
        try:
            cursor = conn.cursor()
            try:
                for sql, params in statements:
                    cursor.execute(sql, tuple(params))
                conn.commit()
            except MySQLError:
                conn.rollback()
                raise
            finally:
                cursor.close()
        finally:
            conn.close()

    async def _execute(self, statements: List[Statement], action: str) -> None:
        async with self._slots:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._execute_blocking, statements)
            except MySQLError as e:
                raise self._translate(e, action) from e

    async def create_database(self, name: str) -> None:
        logger.info(f"Creating database {name}")
        await self._execute([(
            f"CREATE DATABASE IF NOT EXISTS {quote_identifier(name)} "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci",
            ()
        )], f"create database {name}")

    async def restore_dump(self, name: str, dump_file: str) -> None:
        if not os.path.isfile(dump_file):
            raise ItemMigrationError(f"Dump file not found: {dump_file}")

        # server reachability is checked over the pool before the client runs
        await self._execute([("SELECT 1", ())], f"restore {name}")

        env = os.environ.copy()
        if self.admin_password:
            env["MYSQL_PWD"] = self.admin_password
        command = [
            self.mysql_binary,
            f"--host={self.host}",
            f"--port={self.port}",
            f"--user={self.admin_user}",
            "--batch",
            name,
        ]

        logger.info(f"Restoring {dump_file} into {name}")
        try:
            with open(dump_file, "rb") as f:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=f,
                    stderr=asyncio.subprocess.PIPE,
                    env=env
                )
                _, stderr = await process.communicate()
        except FileNotFoundError as e:
            raise ServiceUnavailableError(f"MySQL client not found: {self.mysql_binary}") from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise ItemMigrationError(
                f"Restore of {name} failed: {message}",
                details={"returncode": process.returncode}
            )

    async def create_user(
        self,
        username: str,
        password: Optional[str],
        privileges: List[str],
        databases: List[str],
        password_hash: Optional[str] = None,
        host: str = "localhost"
    ) -> None:
        if password:
            create = ("CREATE USER IF NOT EXISTS %s@%s IDENTIFIED BY %s", (username, host, password))
        elif password_hash:
            create = (
                "CREATE USER IF NOT EXISTS %s@%s IDENTIFIED WITH mysql_native_password AS %s",
                (username, host, password_hash)
            )
        else:
            raise ItemMigrationError(f"No password or password hash for database user {username}")

        granted = ", ".join(normalize_privileges(username, privileges))
        statements: List[Statement] = [create]
        for database in databases:
            statements.append((
                f"GRANT {granted} ON {quote_identifier(database)}.* TO %s@%s",
                (username, host)
            ))
        statements.append(("FLUSH PRIVILEGES", ()))

        logger.info(f"Creating database user {username} for {', '.join(databases)}")
        await self._execute(statements, f"create database user {username}")

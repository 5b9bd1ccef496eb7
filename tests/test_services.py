"""
Tests for the destination services and notifiers.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import test_utils, web
from mysql.connector import errorcode, errors

from conftest import RecordingNotifier
from hosting_migrator.core.exceptions import ItemMigrationError, ServiceUnavailableError
from hosting_migrator.services import (
    CompositeNotifier, LoggingNotifier, MySQLDatabaseService, WebhookNotifier
)
from hosting_migrator.services.mysql import quote_identifier

POOL = "hosting_migrator.services.mysql.MySQLConnectionPool"
SUBPROCESS = "hosting_migrator.services.mysql.asyncio.create_subprocess_exec"


def fake_process(returncode: int = 0, stderr: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(b"", stderr))
    return process


def executed(pool_class: MagicMock) -> list:
    """Statements and parameters sent through the pooled cursor."""
    cursor = pool_class.return_value.get_connection.return_value.cursor.return_value
    return [call.args for call in cursor.execute.call_args_list]


class TestQuoting:
    """Test SQL identifier quoting."""

    def test_quote_identifier(self):
        assert quote_identifier("shop`db") == "`shop``db`"


class TestMySQLDatabaseService:
    """Test the MySQL service with a mocked connection pool."""

    @pytest.fixture
    def service(self) -> MySQLDatabaseService:
        return MySQLDatabaseService(host="db.internal", admin_user="admin", admin_password="hunter2")

    @pytest.fixture
    def pool(self):
        with patch(POOL) as pool_class:
            yield pool_class

    @pytest.mark.asyncio
    async def test_create_database(self, service, pool):
        await service.create_database("newuser_wp")

        config = pool.call_args.kwargs
        assert config["host"] == "db.internal"
        assert config["user"] == "admin"
        assert config["password"] == "hunter2"
        assert config["sql_mode"] == "TRADITIONAL"
        assert executed(pool) == [(
            "CREATE DATABASE IF NOT EXISTS `newuser_wp` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci",
            (),
        )]
        connection = pool.return_value.get_connection.return_value
        connection.commit.assert_called_once()
        connection.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_pool_is_created_once(self, service, pool):
        await service.create_database("a")
        await service.create_database("b")

        assert pool.call_count == 1

    @pytest.mark.asyncio
    async def test_create_user_with_password_hash(self, service, pool):
        await service.create_user("newuser_wp", None, ["ALL"], ["newuser_wp"], password_hash="*ABC")

        assert executed(pool) == [
            ("CREATE USER IF NOT EXISTS %s@%s IDENTIFIED WITH mysql_native_password AS %s",
             ("newuser_wp", "localhost", "*ABC")),
            ("GRANT ALL PRIVILEGES ON `newuser_wp`.* TO %s@%s", ("newuser_wp", "localhost")),
            ("FLUSH PRIVILEGES", ()),
        ]

    @pytest.mark.asyncio
    async def test_credentials_never_enter_statement_text(self, service, pool):
        """Hashes read from a backup are passed only as parameters."""
        hostile = "x\\' OR 1=1; DROP DATABASE shop; -- "

        await service.create_user("bob'", None, ["ALL"], ["shop"], password_hash=hostile, host="%")

        statements = executed(pool)
        assert all(hostile not in sql and "bob'" not in sql for sql, _ in statements)
        assert statements[0][1] == ("bob'", "%", hostile)

    @pytest.mark.asyncio
    async def test_create_user_with_selected_privileges(self, service, pool):
        await service.create_user("reader", "pw", ["select", "insert"], ["shop"])

        statements = executed(pool)
        assert statements[0] == ("CREATE USER IF NOT EXISTS %s@%s IDENTIFIED BY %s", ("reader", "localhost", "pw"))
        assert statements[1][0] == "GRANT SELECT, INSERT ON `shop`.* TO %s@%s"

    @pytest.mark.asyncio
    async def test_invalid_privilege_rejected(self, service, pool):
        with pytest.raises(ItemMigrationError):
            await service.create_user("u", "pw", ["ALL; DROP DATABASE x"], ["shop"])

        pool.assert_not_called()

    @pytest.mark.asyncio
    async def test_user_without_credentials(self, service, pool):
        with pytest.raises(ItemMigrationError):
            await service.create_user("u", None, ["ALL"], ["shop"])

    @pytest.mark.asyncio
    async def test_sql_error_fails_item(self, service, pool):
        cursor = pool.return_value.get_connection.return_value.cursor.return_value
        cursor.execute.side_effect = errors.ProgrammingError(
            msg="You have an error in your SQL syntax", errno=errorcode.ER_PARSE_ERROR
        )

        with pytest.raises(ItemMigrationError) as exc_info:
            await service.create_database("db")

        assert not isinstance(exc_info.value, ServiceUnavailableError)
        assert exc_info.value.details["errno"] == errorcode.ER_PARSE_ERROR
        pool.return_value.get_connection.return_value.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreachable_server_is_infrastructure_failure(self, service, pool):
        pool.side_effect = errors.InterfaceError(
            msg="Can't connect to MySQL server on 'db.internal:3306'", errno=errorcode.CR_CONN_HOST_ERROR
        )

        with pytest.raises(ServiceUnavailableError):
            await service.create_database("db")

    @pytest.mark.asyncio
    async def test_access_denied_is_infrastructure_failure(self, service, pool):
        pool.side_effect = errors.ProgrammingError(
            msg="Access denied for user 'admin'", errno=errorcode.ER_ACCESS_DENIED_ERROR
        )

        with pytest.raises(ServiceUnavailableError):
            await service.create_user("u", "pw", ["ALL"], ["shop"])

    @pytest.mark.asyncio
    async def test_restore_dump_streams_file(self, service, pool, tmp_path):
        dump = tmp_path / "wp.sql"
        dump.write_text("CREATE TABLE a (id INT);")
        process = fake_process()

        with patch(SUBPROCESS, AsyncMock(return_value=process)) as exec_mock:
            await service.restore_dump("newuser_wp", str(dump))

        args = exec_mock.call_args.args
        assert args[0] == "mysql"
        assert "--host=db.internal" in args
        assert args[-1] == "newuser_wp"
        assert "hunter2" not in " ".join(args)
        assert exec_mock.call_args.kwargs["env"]["MYSQL_PWD"] == "hunter2"
        assert exec_mock.call_args.kwargs["stdin"].name == str(dump)
        assert executed(pool) == [("SELECT 1", ())]

    @pytest.mark.asyncio
    async def test_restore_checks_server_before_running_client(self, service, pool, tmp_path):
        dump = tmp_path / "wp.sql"
        dump.write_text("SELECT 1;")
        pool.side_effect = errors.InterfaceError(msg="Lost connection", errno=errorcode.CR_SERVER_LOST)

        with patch(SUBPROCESS, AsyncMock(return_value=fake_process())) as exec_mock:
            with pytest.raises(ServiceUnavailableError):
                await service.restore_dump("db", str(dump))

        exec_mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_restore_failure_fails_item(self, service, pool, tmp_path):
        dump = tmp_path / "wp.sql"
        dump.write_text("broken")
        process = fake_process(1, b"ERROR 1064 (42000) at line 1: You have an error in your SQL syntax")

        with patch(SUBPROCESS, AsyncMock(return_value=process)):
            with pytest.raises(ItemMigrationError) as exc_info:
                await service.restore_dump("db", str(dump))

        assert not isinstance(exc_info.value, ServiceUnavailableError)
        assert "ERROR 1064" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_restore_missing_dump(self, service, pool, tmp_path):
        with pytest.raises(ItemMigrationError):
            await service.restore_dump("db", str(tmp_path / "missing.sql"))

        pool.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_client_binary(self, service, pool, tmp_path):
        dump = tmp_path / "wp.sql"
        dump.write_text("SELECT 1;")

        with patch(SUBPROCESS, AsyncMock(side_effect=FileNotFoundError("mysql"))):
            with pytest.raises(ServiceUnavailableError):
                await service.restore_dump("db", str(dump))


class TestNotifiers:
    """Test outcome notifiers."""

    async def serve(self, status: int, received: list) -> test_utils.TestServer:
        async def handler(request):
            received.append(await request.json())
            return web.Response(status=status)

        app = web.Application()
        app.router.add_post("/hook", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        return server

    @pytest.mark.asyncio
    async def test_logging_notifier(self):
        result = await LoggingNotifier().notify_migration_outcome("MIG-1", "completed", {"message": "x"})

        assert result.success

    @pytest.mark.asyncio
    async def test_webhook_delivers_payload(self):
        received = []
        server = await self.serve(204, received)
        try:
            notifier = WebhookNotifier(str(server.make_url("/hook")))
            result = await notifier.notify_migration_outcome("MIG-1", "failed", {"step": "extract"})
        finally:
            await server.close()

        assert result.success
        assert received == [{"migration_id": "MIG-1", "status": "failed", "details": {"step": "extract"}}]

    @pytest.mark.asyncio
    async def test_webhook_error_status(self):
        server = await self.serve(500, [])
        try:
            result = await WebhookNotifier(str(server.make_url("/hook"))).notify_migration_outcome("MIG-1", "completed")
        finally:
            await server.close()

        assert not result.success
        assert result.details["status"] == 500

    @pytest.mark.asyncio
    async def test_webhook_unreachable(self):
        server = await self.serve(200, [])
        url = str(server.make_url("/hook"))
        await server.close()

        result = await WebhookNotifier(url, timeout=2).notify_migration_outcome("MIG-1", "completed")

        assert not result.success
        assert "Webhook delivery failed" in result.error

    @pytest.mark.asyncio
    async def test_composite_reports_partial_failure(self):
        recording = RecordingNotifier(fail=True)
        composite = CompositeNotifier(LoggingNotifier(), recording)

        result = await composite.notify_migration_outcome("MIG-1", "cancelled")

        assert not result.success
        assert result.details["delivered"] == 1
        assert recording.notifications[0]["status"] == "cancelled"

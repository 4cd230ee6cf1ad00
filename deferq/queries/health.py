"""Health queries - connectivity probes issued through the deferred core."""

from deferq.core.container import ExecutionContainer


def ping():
    async def run(container: ExecutionContainer):
        return await container.db.scalar("SELECT 1")
    return run


def server_time():
    async def run(container: ExecutionContainer):
        return await container.db.scalar("SELECT CURRENT_TIMESTAMP")
    return run

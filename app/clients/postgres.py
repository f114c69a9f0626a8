import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg


@asynccontextmanager
async def get_pg_connection() -> AsyncGenerator[asyncpg.Connection, None]:

    connection: asyncpg.Connection = await asyncpg.connect(
        user=os.getenv('POSTGRES_USER', 'explore'),
        password=os.getenv('POSTGRES_PASSWORD', 'postgres'),
        database=os.getenv('POSTGRES_DB', 'explore'),
        host=os.getenv('POSTGRES_HOST', 'localhost'),
        port=int(os.getenv('POSTGRES_PORT', '5432')),
    )

    try:
        yield connection
    finally:
        await connection.close()

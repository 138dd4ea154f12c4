"""SQLite persistence for tenant (chatbot) records."""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import closing
from pathlib import Path

from .config import config
from .errors import NotFoundError, ValidationError
from .models import PREVIEW_TENANT_ID, ChatbotConfig, Tenant

logger = config.get_logger(__name__)

TENANT_COLUMNS = """
    id,
    business_name,
    industry_type,
    location,
    contact_phone,
    rag_content,
    config,
    created_at,
    updated_at
"""


class TenantStore:
    """Reads and writes the ``chatbots`` table."""

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize the store and ensure the table exists.

        Args:
            db_path: SQLite file; defaults to config.VECTOR_STORE_DB_PATH.
        """
        self.db_path = Path(db_path or config.VECTOR_STORE_DB_PATH)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=30)

    def _create_tables(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chatbots (
                    id TEXT PRIMARY KEY,
                    business_name TEXT NOT NULL DEFAULT '',
                    industry_type TEXT NOT NULL DEFAULT '',
                    location TEXT NOT NULL DEFAULT '',
                    contact_phone TEXT NOT NULL DEFAULT '',
                    rag_content TEXT NOT NULL DEFAULT '',
                    config TEXT NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    @staticmethod
    def _build_tenant(row: tuple) -> Tenant:
        (
            tenant_id,
            business_name,
            industry,
            location,
            contact_phone,
            rag_content,
            config_json,
            created_at,
            updated_at,
        ) = row
        try:
            raw_config = json.loads(config_json) if config_json else {}
        except json.JSONDecodeError:
            logger.warning("Tenant %s has unreadable config; using defaults", tenant_id)
            raw_config = {}
        return Tenant(
            id=tenant_id,
            business_name=business_name,
            industry=industry,
            location=location,
            contact_phone=contact_phone,
            rag_content=rag_content,
            config=ChatbotConfig.from_dict(raw_config),
            created_at=created_at,
            updated_at=updated_at,
        )

    def get(self, tenant_id: str) -> Tenant:
        """Load one tenant.

        Returns:
            The tenant; the built-in preview tenant for ``"preview"``.

        Raises:
            NotFoundError: If no such tenant exists.
        """
        if tenant_id == PREVIEW_TENANT_ID:
            return Tenant.preview()

        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {TENANT_COLUMNS} FROM chatbots WHERE id = ?",  # noqa: S608
                (tenant_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError
        return self._build_tenant(row)

    def list_tenants(self) -> list[Tenant]:
        """Return all tenants, newest first."""  # noqa: DOC201
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {TENANT_COLUMNS} FROM chatbots "  # noqa: S608
                "ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [self._build_tenant(row) for row in rows]

    def save(self, tenant: Tenant) -> Tenant:
        """Insert or update a tenant; a blank id gets a fresh UUID.

        Returns:
            The stored tenant, re-read from the database.

        Raises:
            ValidationError: If the reserved preview id is used.
        """
        if tenant.id == PREVIEW_TENANT_ID:
            msg = f"Tenant id {PREVIEW_TENANT_ID!r} is reserved"
            raise ValidationError(msg)
        tenant_id = tenant.id or str(uuid.uuid4())

        with closing(self._connect()) as conn:
            conn.execute(
                """
                INSERT INTO chatbots (
                    id,
                    business_name,
                    industry_type,
                    location,
                    contact_phone,
                    rag_content,
                    config
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    business_name = excluded.business_name,
                    industry_type = excluded.industry_type,
                    location = excluded.location,
                    contact_phone = excluded.contact_phone,
                    rag_content = excluded.rag_content,
                    config = excluded.config,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    tenant_id,
                    tenant.business_name,
                    tenant.industry,
                    tenant.location,
                    tenant.contact_phone,
                    tenant.rag_content,
                    json.dumps(tenant.config.to_dict()),
                ),
            )
            conn.commit()

        logger.info("Saved tenant %s", tenant_id)
        return self.get(tenant_id)

    def delete(self, tenant_id: str) -> None:
        """Delete a tenant record.

        Raises:
            NotFoundError: If no such tenant exists.
        """
        with closing(self._connect()) as conn:
            cursor = conn.execute("DELETE FROM chatbots WHERE id = ?", (tenant_id,))
            conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError
        logger.info("Deleted tenant %s", tenant_id)

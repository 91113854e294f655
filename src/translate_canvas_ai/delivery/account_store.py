"""
Direct account import backed by the DuckDB account tables.

Each node's metadata becomes one canvas_nodes row; the canvas row references
them and is flagged ``needs_compilation`` so the story platform compiles it
on its next pass.
"""

from __future__ import annotations

import re
from typing import Any

import duckdb

from translate_canvas_ai.canvas.models import CanvasDocument
from translate_canvas_ai.database import Database, new_object_id
from translate_canvas_ai.delivery.base import AccountImporter, DeliveryResult
from translate_canvas_ai.errors import DeliveryError

ACCOUNT_ID_PATTERN = re.compile(r"^[a-f0-9]{24}$", re.IGNORECASE)

DEFAULT_COMPILER_VERSION = 4

# Canvas settings copied to the imported row, with platform defaults
CANVAS_SETTING_DEFAULTS: dict[str, Any] = {
    "tagCategorization": {"categories": []},
    "embeddingService": "gemini",
    "embeddingModel": "gemini-embedding-001",
    "imageTaggingMethod": 2,
    "useKRJPGuidelines": False,
}


class AccountStore(AccountImporter):
    """Imports translated canvases into the local account tables."""

    def __init__(self, db: Database):
        self.db = db

    async def import_document(
        self,
        document: CanvasDocument,
        account_id: str,
        title: str | None = None,
    ) -> DeliveryResult:
        if not account_id or not ACCOUNT_ID_PATTERN.match(account_id):
            raise DeliveryError(
                "Invalid account id format. Must be a 24-character hex string.",
                details={"account_id": account_id},
            )
        if not self.db.account_exists(account_id):
            raise DeliveryError(f"Unknown account: {account_id}", details={"account_id": account_id})

        language = document.language
        title = title or f"Translated Canvas - {language}"
        canvas_id = new_object_id()

        try:
            with self.db.transaction():
                node_ids: dict[str, str] = {}
                for uid, meta in document.metadata_set.items():
                    row = {key: value for key, value in meta.items() if key != "uid"}
                    node_ids[uid] = self.db.insert_canvas_node(
                        node_uid=uid,
                        node_type=meta.get("type"),
                        metadata=row,
                        canvas_id=canvas_id,
                    )

                nodes = [
                    {
                        "uid": ref.get("uid"),
                        "hash": ref.get("hash") or "",
                        "coordinates": ref.get("coordinates") or {"x": 0, "y": 0},
                        "deleted": bool(ref.get("deleted")),
                        "name": ref.get("name") or "",
                        "type": ref.get("type"),
                        "metadataId": node_ids.get(ref.get("uid")),
                    }
                    for ref in document.nodes
                ]

                settings = {
                    key: document.canvas.get(key) or default
                    for key, default in CANVAS_SETTING_DEFAULTS.items()
                }

                self.db.insert_canvas(
                    canvas_id=canvas_id,
                    creator_id=account_id,
                    title=title,
                    canvas_language=language,
                    compiler_version=(
                        document.canvas.get("compilerVersion") or DEFAULT_COMPILER_VERSION
                    ),
                    nodes=nodes,
                    connections=document.connections,
                    settings=settings,
                )
        except duckdb.Error as e:
            raise DeliveryError(
                f"Account import failed: {e}",
                details={"account_id": account_id, "error_type": type(e).__name__},
            ) from e

        return DeliveryResult(
            target="account",
            reference=canvas_id,
            message="Canvas imported. It will be compiled automatically.",
            metadata={"node_count": len(node_ids)},
        )

"""Bearer-token gates for ingestion and reporting"""

from .dependencies import require_admin, require_ingest_key

__all__ = ["require_admin", "require_ingest_key"]

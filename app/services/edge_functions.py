"""Client for the hosted edge functions that run document processing out of band."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


class EdgeFunctionClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = f"{settings.SUPABASE_URL.rstrip('/')}/functions/v1"
        self.headers = {
            "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
            "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
        }
        self.transport = transport

    async def invoke(self, name: str, body: Dict[str, Any]) -> Any:
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(f"{self.base_url}/{name}", headers=self.headers, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Edge function {name} unreachable: {str(e)}")
            raise UpstreamFailure(f"{name} failed: {str(e)}", original_error=e)

        if response.status_code >= 400:
            logger.error(f"Edge function {name} responded with {response.status_code}: {response.text}")
            raise UpstreamFailure(f"{name} responded with status: {response.status_code}")

        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def process_document(self, source_id: str, file_path: str, source_type: str) -> Any:
        """Ask the processing function to extract content and a summary for a source."""
        return await self.invoke("process-document", {
            "sourceId": source_id,
            "filePath": file_path,
            "sourceType": source_type,
        })

    async def generate_notebook_content(self, notebook_id: str, file_path: Optional[str], source_type: str) -> Any:
        """Ask for the document's generated title, description and example questions."""
        return await self.invoke("generate-notebook-content", {
            "notebookId": notebook_id,
            "filePath": file_path,
            "sourceType": source_type,
        })

    async def process_additional_sources(
        self,
        kind: str,
        notebook_id: str,
        source_ids: List[str],
        **payload: Any,
    ) -> Any:
        """Hand pasted text or website URLs to the ingestion workflow."""
        return await self.invoke("process-additional-sources", {
            "type": kind,
            "notebookId": notebook_id,
            "sourceIds": source_ids,
            "timestamp": datetime.utcnow().isoformat(),
            **payload,
        })

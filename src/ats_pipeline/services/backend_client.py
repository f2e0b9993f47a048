"""Client for the recruitment REST API consumed by the pipeline engine."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

import aiohttp
import structlog

from ats_pipeline.core.config import Settings, settings as default_settings
from ats_pipeline.core.error_handling import NetworkError, PipelineError, ServerError
from ats_pipeline.models.stage import Stage
from ats_pipeline.schemas.application import Application

logger = structlog.get_logger(__name__)

ItemResult = Union[Application, None, PipelineError]


class PipelineBackend(ABC):
    """Backend operations the pipeline engine depends on.
    
    Single-item methods raise ``NetworkError`` or ``ServerError``. The bulk
    methods fan out one independent single-item call per ID and report each
    result separately, so one failing ID never hides the others.
    """
    
    @abstractmethod
    async def fetch_applications(self, job_id: str) -> List[Application]:
        """Return every application for a job."""
    
    @abstractmethod
    async def update_application_status(
        self,
        application_id: str,
        stage: Stage,
        note: Optional[str] = None
    ) -> Optional[Application]:
        """Move one application to a stage; returns the server record when sent."""
    
    @abstractmethod
    async def tag_application(self, application_id: str, tags: Iterable[str]) -> Optional[Application]:
        """Add tags to one application."""
    
    @abstractmethod
    async def delete_application(self, application_id: str) -> None:
        """Delete one application."""
    
    @abstractmethod
    async def send_email(self, application_id: str, subject: str, body: str) -> None:
        """Email the candidate behind one application."""
    
    async def bulk_update_status(
        self,
        application_ids: Iterable[str],
        stage: Stage,
        note: Optional[str] = None
    ) -> Dict[str, ItemResult]:
        return await self._fan_out(
            application_ids,
            lambda application_id: self.update_application_status(application_id, stage, note)
        )
    
    async def tag_applications(self, application_ids: Iterable[str], tags: Iterable[str]) -> Dict[str, ItemResult]:
        tags = list(tags)
        return await self._fan_out(
            application_ids,
            lambda application_id: self.tag_application(application_id, tags)
        )
    
    async def delete_applications(self, application_ids: Iterable[str]) -> Dict[str, ItemResult]:
        return await self._fan_out(application_ids, self.delete_application)
    
    async def send_bulk_email(
        self,
        application_ids: Iterable[str],
        subject: str,
        body: str
    ) -> Dict[str, ItemResult]:
        return await self._fan_out(
            application_ids,
            lambda application_id: self.send_email(application_id, subject, body)
        )
    
    @staticmethod
    async def _fan_out(
        application_ids: Iterable[str],
        call: Callable[[str], Awaitable[Any]]
    ) -> Dict[str, ItemResult]:
        ids = list(dict.fromkeys(application_ids))
        results = await asyncio.gather(*(call(i) for i in ids), return_exceptions=True)
        
        outcome: Dict[str, ItemResult] = {}
        for application_id, result in zip(ids, results):
            if isinstance(result, PipelineError):
                outcome[application_id] = result
            elif isinstance(result, BaseException):
                outcome[application_id] = NetworkError(
                    str(result) or type(result).__name__,
                    application_id=application_id,
                    original_error=result if isinstance(result, Exception) else None
                )
            else:
                outcome[application_id] = result
        return outcome


class HttpPipelineBackend(PipelineBackend):
    """aiohttp implementation speaking the ``{success, data, message}`` envelope."""
    
    def __init__(
        self,
        config: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.config = config or default_settings
        self._session = session
        self._owns_session = session is None
    
    async def __aenter__(self) -> "HttpPipelineBackend":
        return self
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
    
    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
    
    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.config.api_token:
                headers["Authorization"] = f"Bearer {self.config.api_token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            )
            self._owns_session = True
        return self._session
    
    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        application_id: Optional[str] = None
    ) -> Any:
        """Send one request and return the unwrapped ``data`` of the envelope.
        
        Raises:
            NetworkError: On transport failures and timeouts
            ServerError: On non-2xx responses or a ``success: false`` envelope
        """
        url = f"{self.config.api_root}{path}"
        session = self._get_session()
        
        try:
            async with session.request(method, url, json=payload) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                
                if response.status >= 400:
                    message = self._extract_message(body) or f"HTTP {response.status}"
                    logger.warning(
                        "Backend request failed",
                        method=method,
                        path=path,
                        status_code=response.status,
                        message=message
                    )
                    raise ServerError(message, status_code=response.status, application_id=application_id)
                
                if isinstance(body, dict) and body.get("success") is False:
                    message = self._extract_message(body) or "Request was rejected"
                    raise ServerError(message, status_code=response.status, application_id=application_id)
                
                if isinstance(body, dict) and "data" in body:
                    return body["data"]
                return body
                
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"{method} {path} timed out after {self.config.request_timeout_seconds}s",
                application_id=application_id,
                original_error=e
            )
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"{method} {path} failed: {e}",
                application_id=application_id,
                original_error=e
            )
    
    @staticmethod
    def _extract_message(body: Any) -> Optional[str]:
        if isinstance(body, dict):
            return body.get("message") or body.get("error")
        return None
    
    @staticmethod
    def _parse_application(data: Any, job_id: Optional[str] = None) -> Optional[Application]:
        if not isinstance(data, dict):
            return None
        if job_id is not None:
            data = {"jobId": job_id, **data}
        return Application.model_validate(data)
    
    async def fetch_applications(self, job_id: str) -> List[Application]:
        data = await self._request("GET", f"/recruiter/candidates/jobs/{job_id}/candidates")
        
        if isinstance(data, dict):
            data = data.get("candidates") or data.get("applications") or []
        if not isinstance(data, list):
            raise ServerError(f"Unexpected candidate list payload for job {job_id}")
        
        try:
            return [self._parse_application(item, job_id) for item in data if isinstance(item, dict)]
        except ValueError as e:
            # pydantic.ValidationError subclasses ValueError
            raise ServerError(f"Malformed application record: {e}", original_error=e)
    
    async def update_application_status(
        self,
        application_id: str,
        stage: Stage,
        note: Optional[str] = None
    ) -> Optional[Application]:
        payload = {"status": Stage(stage).value, "notes": note or ""}
        data = await self._request(
            "PUT",
            f"/recruiter/candidates/{application_id}/status",
            payload,
            application_id=application_id
        )
        return self._parse_server_record(data, application_id)
    
    async def tag_application(self, application_id: str, tags: Iterable[str]) -> Optional[Application]:
        data = await self._request(
            "POST",
            f"/recruiter/candidates/{application_id}/tags",
            {"tags": sorted(tags)},
            application_id=application_id
        )
        return self._parse_server_record(data, application_id)
    
    async def delete_application(self, application_id: str) -> None:
        await self._request(
            "DELETE",
            f"/recruiter/candidates/{application_id}",
            application_id=application_id
        )
    
    async def send_email(self, application_id: str, subject: str, body: str) -> None:
        await self._request(
            "POST",
            f"/recruiter/candidates/{application_id}/email",
            {"subject": subject, "body": body},
            application_id=application_id
        )
    
    def _parse_server_record(self, data: Any, application_id: str) -> Optional[Application]:
        # Some endpoints echo the record, others only acknowledge
        try:
            return self._parse_application(data)
        except ValueError as e:
            logger.warning(
                "Ignoring unparseable record in backend response",
                application_id=application_id,
                error=str(e)
            )
            return None

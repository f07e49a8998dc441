import httpx
import structlog

from ...domain.entities import TaskRequest, TaskResult
from ...domain.errors import InvocationFailure
from ...domain.ports import TaskUnit

logger = structlog.get_logger()


class HttpTaskUnit(TaskUnit):
    """POSTs the task request as JSON to an HTTP endpoint."""

    def __init__(self, url: str, timeout: float = 30.0, headers: dict[str, str] | None = None) -> None:
        self._url = url
        self._timeout = timeout
        self._headers = headers or {}

    @property
    def url(self) -> str:
        return self._url

    async def run(self, request: TaskRequest) -> TaskResult:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json=request.to_payload(),
                    headers=self._headers,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Task endpoint returned error",
                url=self._url,
                status_code=e.response.status_code,
            )
            return TaskResult(success=False, detail=f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            raise InvocationFailure(f"Request to {self._url} failed: {e}") from e

        logger.info("Task endpoint called", url=self._url, status_code=response.status_code)
        return TaskResult(success=True, detail=f"HTTP {response.status_code}")

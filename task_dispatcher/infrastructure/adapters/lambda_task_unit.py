import json

import structlog
from aiobotocore.session import get_session

from ...domain.entities import TaskRequest, TaskResult
from ...domain.errors import InvocationFailure
from ...domain.ports import TaskUnit

logger = structlog.get_logger()

# Longest slice of a function's response kept in outcome details
_DETAIL_LIMIT = 500


class LambdaTaskUnit(TaskUnit):
    """Invokes a Lambda function synchronously with the task request as payload."""

    def __init__(
        self,
        function_name: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
    ) -> None:
        self._function_name = function_name
        self._region = region
        self._endpoint_url = endpoint_url
        self._session = get_session()

    @property
    def function_name(self) -> str:
        return self._function_name

    async def run(self, request: TaskRequest) -> TaskResult:
        client_kwargs = {"region_name": self._region}
        if self._endpoint_url:
            client_kwargs["endpoint_url"] = self._endpoint_url

        try:
            async with self._session.create_client("lambda", **client_kwargs) as client:
                response = await client.invoke(
                    FunctionName=self._function_name,
                    InvocationType="RequestResponse",
                    Payload=json.dumps(request.to_payload()).encode("utf-8"),
                )
                body = await response["Payload"].read()
        except Exception as e:
            raise InvocationFailure(f"Lambda invoke failed: {e}") from e

        detail = body.decode("utf-8", errors="replace")[:_DETAIL_LIMIT]
        status_code = response.get("StatusCode", 0)

        if response.get("FunctionError"):
            logger.warning(
                "Lambda function error",
                function=self._function_name,
                function_error=response["FunctionError"],
            )
            return TaskResult(success=False, detail=f"{response['FunctionError']}: {detail}")

        if not 200 <= status_code < 300:
            return TaskResult(success=False, detail=f"Lambda returned status {status_code}")

        logger.info(
            "Lambda invoked",
            function=self._function_name,
            status_code=status_code,
            attempt=request.attempt,
        )
        return TaskResult(success=True, detail=detail)

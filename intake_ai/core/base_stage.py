"""Base stage interface for every pipeline stage that calls the text-generation service."""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from intake_ai.core.exceptions import (
    MalformedResponseError,
    ServiceUnavailableError,
)
from intake_ai.utils.json_parser import ParseOutcome, recover_json
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 60.0


class StageStatus(str, Enum):
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StageResult(Generic[T]):
    """Standard result from stage execution.

    Attributes:
        stage: Stage (or step) name
        status: How the stage ended
        value: Stage output; the stage default when degraded or failed
        error: Error description for degraded/failed results
        duration_ms: Wall-clock time spent in the stage
        model: Identifier of the model that served the call
    """
    stage: str
    status: StageStatus
    value: T
    error: Optional[str] = None
    duration_ms: int = 0
    model: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (StageStatus.COMPLETED, StageStatus.SKIPPED)

    @property
    def called_service(self) -> bool:
        return self.status != StageStatus.SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status.value,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "model": self.model,
        }


class BaseStage:
    """Base class for stages backed by the text-generation service.

    Subclasses receive an injected client exposing
    ``generate_content(contents, system_instruction, generation_config)``.
    Every call is bounded by a timeout, and every failure is converted into a
    ``StageResult`` carrying the stage default instead of an exception.
    """

    name: str = "stage"

    def __init__(self, client: Any, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        """Initialize the stage.

        Args:
            client: Text-generation client
            timeout_seconds: Default timeout for a single call
        """
        self.client = client
        self.timeout_seconds = timeout_seconds

    @property
    def model(self) -> str:
        return str(getattr(self.client, "model", None) or "unknown")

    async def generate(
        self,
        contents: str,
        system_instruction: str,
        json_response: bool = True,
        timeout: Optional[float] = None,
    ) -> str:
        """Call the text-generation service once.

        Args:
            contents: User content
            system_instruction: Instruction describing the task
            json_response: Ask the provider for a JSON payload
            timeout: Per-call timeout override in seconds

        Returns:
            Raw response text

        Raises:
            ServiceUnavailableError: If the call fails or times out
        """
        generation_config: Dict[str, Any] = {"temperature": 0.1}
        if json_response:
            generation_config["response_mime_type"] = "application/json"

        limit = timeout if timeout is not None else self.timeout_seconds
        try:
            response = await asyncio.wait_for(
                self.client.generate_content(
                    contents=contents,
                    system_instruction=system_instruction,
                    generation_config=generation_config,
                ),
                timeout=limit,
            )
        except asyncio.TimeoutError as e:
            raise ServiceUnavailableError(
                f"{self.name}: text-generation call timed out after {limit}s", original_error=e
            )
        except Exception as e:
            raise ServiceUnavailableError(
                f"{self.name}: text-generation call failed: {e}", original_error=e
            )

        return response or ""

    def parse(self, response: str, default: Any, expected_type: Optional[type] = None) -> Any:
        """Recover structured data from a response.

        Raises:
            MalformedResponseError: If the full recovery chain fails
        """
        outcome: ParseOutcome = recover_json(response, default, expected_type=expected_type)
        if not outcome.recovered:
            raise MalformedResponseError(f"{self.name}: response could not be parsed")
        return outcome.value

    async def guarded(
        self,
        operation: Callable[[], Awaitable[T]],
        default: T,
        step: Optional[str] = None,
    ) -> StageResult[T]:
        """Run one service-backed operation, degrading to ``default`` on failure.

        Args:
            operation: Zero-argument coroutine factory performing the work
            default: Value reported when the operation cannot complete
            step: Optional step name (defaults to the stage name)

        Returns:
            StageResult with status completed, degraded or failed
        """
        stage_name = step or self.name
        started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            value = await operation()
            return StageResult(
                stage=stage_name,
                status=StageStatus.COMPLETED,
                value=value,
                duration_ms=elapsed(),
                model=self.model,
            )

        except ServiceUnavailableError as e:
            LOGGER.warning(
                f"Stage '{stage_name}' degraded: service unavailable",
                extra={"stage": stage_name, "error": str(e)}
            )
            return StageResult(
                stage=stage_name,
                status=StageStatus.FAILED,
                value=default,
                error=str(e),
                duration_ms=elapsed(),
                model=self.model,
            )

        except MalformedResponseError as e:
            LOGGER.warning(
                f"Stage '{stage_name}' degraded: malformed response",
                extra={"stage": stage_name}
            )
            return StageResult(
                stage=stage_name,
                status=StageStatus.DEGRADED,
                value=default,
                error=str(e),
                duration_ms=elapsed(),
                model=self.model,
            )

        except Exception as e:
            LOGGER.error(
                f"Stage '{stage_name}' failed: {e}",
                exc_info=True,
                extra={"stage": stage_name}
            )
            return StageResult(
                stage=stage_name,
                status=StageStatus.FAILED,
                value=default,
                error=str(e),
                duration_ms=elapsed(),
                model=self.model,
            )

    def skipped(self, value: T, step: Optional[str] = None) -> StageResult[T]:
        """Result for a deliberate no-op path."""
        return StageResult(stage=step or self.name, status=StageStatus.SKIPPED, value=value)

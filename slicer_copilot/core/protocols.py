"""Protocol definitions for slicer_copilot collaborators.

Protocols:
    - OptimizerClient: Turns a request payload into a validated optimizer
      response (an OpenAI-compatible endpoint, a mock response file, or a
      test double)

Implementations must:
    - Raise OptimizerError for transport or credential failures
    - Raise InvalidResponseError when the reply fails validation
    - Never mutate the request payload
"""

from typing import Any, Protocol

from slicer_copilot.core.model import OptimizerResponse


class OptimizerClient(Protocol):
    """Protocol for optimizer backends.

    One awaited request per optimize cycle: no retries, batching or streaming.

    Example:
        >>> class FixedOptimizer:
        ...     async def request(self, payload: dict[str, Any]) -> OptimizerResponse:
        ...         return OptimizerResponse(changes=[])
        ...
        >>> response = asyncio.run(FixedOptimizer().request(payload))
    """

    async def request(self, payload: dict[str, Any]) -> OptimizerResponse:
        """Send the payload and return the validated response.

        Args:
            payload: Request payload from ``build_request_payload``

        Returns:
            Validated OptimizerResponse

        Raises:
            OptimizerError: If the optimizer cannot be reached or returns nothing
            InvalidResponseError: If the reply is structurally invalid
        """
        ...

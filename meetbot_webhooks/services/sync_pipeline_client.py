import json
from dataclasses import dataclass
from urllib import error, request


class SyncPipelineError(Exception):
    pass


@dataclass(frozen=True)
class SyncInvocationResult:
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class SyncPipelineClient:
    """Starts the transcript/analysis import for one recording.

    Only the invocation is reported. The pipeline marks the recording ``done``
    itself once its asynchronous work succeeds.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.api_url = api_url.strip()
        self.api_key = api_key.strip()
        self.timeout_seconds = timeout_seconds

    def trigger_sync(self, recording_id: str) -> SyncInvocationResult:
        if not self.api_url:
            raise SyncPipelineError("Sync pipeline URL is not configured.")

        raw_payload = json.dumps({"id": recording_id}).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        req = request.Request(
            self.api_url,
            data=raw_payload,
            headers=headers,
            method="POST",
        )

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                return SyncInvocationResult(
                    status_code=int(response.status),
                    body=response.read().decode("utf-8", errors="ignore"),
                )
        except error.HTTPError as exc:
            return SyncInvocationResult(
                status_code=exc.code,
                body=exc.read().decode("utf-8", errors="ignore"),
            )
        except error.URLError as exc:
            raise SyncPipelineError(f"Sync pipeline connection error: {exc.reason}") from exc
        except TimeoutError as exc:
            raise SyncPipelineError("Sync pipeline request timed out.") from exc

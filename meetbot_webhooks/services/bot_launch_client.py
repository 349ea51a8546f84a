import json
from urllib import error, request

from meetbot_webhooks.schemas.webhook import BotCommandPayload, BotForwardResult


class BotLaunchClient:
    def __init__(
        self,
        service_url: str,
        service_secret: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.service_url = service_url.strip()
        self.service_secret = service_secret.strip()
        self.timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.service_url and self.service_secret)

    def launch(self, command: BotCommandPayload) -> BotForwardResult:
        """Forward a start-bot command. Failures are returned, never raised."""
        raw_payload = json.dumps(
            {
                "meeting_id": command.meeting_id,
                "meeting_url": command.meeting_url,
                "topic": command.title,
                "start_time": command.start_time,
                "end_time": command.end_time,
            },
        ).encode("utf-8")
        req = request.Request(
            self.service_url,
            data=raw_payload,
            headers={
                "Content-Type": "application/json",
                "x-secret-key": self.service_secret,
            },
            method="POST",
        )

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                status_code = int(response.status)
                return BotForwardResult(
                    status=status_code,
                    success=200 <= status_code < 300,
                    response=response.read().decode("utf-8", errors="ignore"),
                )
        except error.HTTPError as exc:
            return BotForwardResult(
                status=exc.code,
                success=False,
                response=exc.read().decode("utf-8", errors="ignore"),
            )
        except error.URLError as exc:
            return BotForwardResult(status=0, success=False, error=str(exc.reason))
        except TimeoutError:
            return BotForwardResult(status=0, success=False, error="Bot service request timed out.")

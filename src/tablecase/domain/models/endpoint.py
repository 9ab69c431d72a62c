from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, replace

from tablecase.core.config import DEFAULT_APP_ID
from tablecase.core.errors import ValidationError


@dataclass(frozen=True, slots=True)
class EndpointInfo:
    server_url: str
    app_id: str = DEFAULT_APP_ID
    username: str = ""
    password: str = ""

    @property
    def is_anonymous(self) -> bool:
        return not self.username

    def sanitized(self, anonymous: bool = False) -> EndpointInfo:
        cleaned = replace(
            self,
            server_url=self.server_url.strip().rstrip("/"),
            app_id=self.app_id.strip(),
            username=self.username.strip(),
        )
        if anonymous:
            cleaned = replace(cleaned, username="", password="")
        return cleaned

    def validate(self) -> None:
        parsed = urllib.parse.urlparse(self.server_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValidationError(f"Cloud endpoint address is not a valid http(s) URL: {self.server_url!r}")
        if not self.app_id:
            raise ValidationError("App ID cannot be empty.")
        if self.username and not self.password:
            raise ValidationError("Password cannot be empty when a username is given.")

    def describe(self) -> str:
        who = "anonymous" if self.is_anonymous else self.username
        return f"{self.server_url} (app={self.app_id}, user={who})"

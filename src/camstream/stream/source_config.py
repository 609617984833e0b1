"""
Stream Source Configuration
===========================

Resolved, immutable connection parameters for one camera source.

Template placeholders are substituted exactly once, at construction:
    [USERNAME] -> login
    [PASSWORD] -> password
    [CHANNEL]  -> channel

Example:
    from camstream.stream.source_config import StreamConfig

    config = StreamConfig.create(
        url="http://192.168.1.20:81/stream",
        login="admin",
        password="secret",
        headers="X-Auth=[USERNAME]:[PASSWORD]",
    )
    config.headers  # "X-Auth=admin:secret"
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from camstream.config import CameraConfig


MODE_MULTIPART = "multipart"
MODE_JPEG = "jpeg"

AUTH_BASIC = "basic"
AUTH_DIGEST = "digest"

DEFAULT_USER_AGENT = "camstream/0.1"


def resolve_template(text: str, login: str, password: str, channel: str) -> str:
    """Substitute credential and channel placeholders in a template string."""
    return (
        (text or "")
        .replace("[USERNAME]", login or "")
        .replace("[PASSWORD]", password or "")
        .replace("[CHANNEL]", channel or "")
    )


@dataclass(frozen=True, slots=True)
class StreamConfig:
    """
    Connection parameters for a camera stream.

    Build with create() or from_settings() so that templates get
    resolved; the constructor stores values as given.

    Attributes:
        url: Camera endpoint
        login: Username for HTTP auth (empty = no auth)
        password: Password for HTTP auth
        channel: Channel id used by [CHANNEL] templates
        cookies: "name=value;name2=value2"
        headers: "Name=value&Name2=value2"
        user_agent: User-Agent header value
        request_timeout_ms: Connect and read timeout
        use_http10: Issue HTTP/1.0 requests
        proxy: Proxy URL, or None
        auth_scheme: "basic" or "digest"
        mode: "multipart" (persistent stream) or "jpeg" (polling)
        max_fps: Frame emission limit, 0 = unlimited
    """

    url: str
    login: str = ""
    password: str = ""
    channel: str = ""
    cookies: str = ""
    headers: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout_ms: int = 5000
    use_http10: bool = False
    proxy: Optional[str] = None
    auth_scheme: str = AUTH_BASIC
    mode: str = MODE_MULTIPART
    max_fps: float = 0.0

    @classmethod
    def create(
        cls,
        url: str,
        login: str = "",
        password: str = "",
        channel: str = "",
        cookies: str = "",
        headers: str = "",
        **kwargs,
    ) -> "StreamConfig":
        """Build a config, resolving templates in url, cookies and headers."""
        login = login or ""
        password = password or ""
        channel = channel or ""
        return cls(
            url=resolve_template(url, login, password, channel).strip(),
            login=login,
            password=password,
            channel=channel,
            cookies=resolve_template(cookies, login, password, channel),
            headers=resolve_template(headers, login, password, channel),
            **kwargs,
        )

    @classmethod
    def from_settings(cls, camera: "CameraConfig") -> "StreamConfig":
        """Build a config from the camera section of Settings."""
        return cls.create(
            url=camera.url,
            login=camera.login,
            password=camera.password,
            channel=camera.channel,
            cookies=camera.cookies,
            headers=camera.headers,
            user_agent=camera.user_agent,
            request_timeout_ms=camera.request_timeout_ms,
            use_http10=camera.use_http10,
            proxy=camera.proxy or None,
            auth_scheme=camera.auth_scheme,
            mode=camera.mode,
            max_fps=camera.max_fps,
        )

    @property
    def request_timeout(self) -> float:
        """Timeout in seconds."""
        return self.request_timeout_ms / 1000.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.login or self.password)

    def __repr__(self) -> str:
        """Repr without the password."""
        return (
            f"StreamConfig(url={self.url!r}, mode={self.mode!r}, "
            f"login={self.login!r}, use_http10={self.use_http10})"
        )

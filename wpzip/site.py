"""Value types describing the exported site."""
from dataclasses import dataclass
from urllib.parse import urlsplit

from wpzip.credentials import DatabaseCredentials
from wpzip.errors import InvalidSiteUrlError


@dataclass(frozen=True)
class SiteUrl:
    """Root url of a WordPress site, reduced to its scheme and host."""

    scheme: str
    host: str

    @classmethod
    def parse(cls, value: str) -> "SiteUrl":
        """Validate an url, keeping only its scheme and host.

        Raises:
            InvalidSiteUrlError: if the url has no scheme or no host.
        """
        try:
            parts = urlsplit(value.strip())
        except ValueError as ex:
            raise InvalidSiteUrlError(f"invalid url {value!r}: {ex}") from ex

        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidSiteUrlError(f"invalid url {value!r}")

        return cls(parts.scheme, parts.netloc)

    @property
    def domain(self) -> str:
        return self.host

    @property
    def secure(self) -> str:
        return f"https://{self.host}"

    @property
    def insecure(self) -> str:
        return f"http://{self.host}"

    def candidates(self, path: str) -> list[str]:
        """Urls of a path on the site, https first."""
        return [f"{self.secure}/{path}", f"{self.insecure}/{path}"]

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host}"


@dataclass(frozen=True)
class PublicPath:
    """Path to the public directory of the site on the remote host.

    Always renders with a trailing slash, so file names can be appended.
    """

    path: str

    def __str__(self) -> str:
        return self.path if self.path.endswith("/") else f"{self.path}/"

    def join(self, name: str) -> str:
        return f"{self}{name}"


@dataclass(frozen=True)
class SiteInfo:
    """Everything needed to export a site, determined once per export."""

    site_url: SiteUrl
    public_path: PublicPath
    credentials: DatabaseCredentials

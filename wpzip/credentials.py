"""Database credentials, and their rendering for the MySQL clients."""
from dataclasses import dataclass, field
from shlex import quote


@dataclass(frozen=True)
class DatabaseCredentials:
    user: str
    password: str = field(repr=False)
    name: str
    host: str = "localhost"


@dataclass(frozen=True)
class ServerAddress:
    """DB_HOST split as WordPress understands it.

    DB_HOST can be "host", "host:port" or "host:/path/to/socket".
    """

    host: str
    port: int | None = None
    socket: str | None = None

    @classmethod
    def parse(cls, value: str) -> "ServerAddress":
        host, _, suffix = value.partition(":")
        host = host or "localhost"
        if suffix.isdigit():
            return cls(host, port=int(suffix))
        if suffix:
            return cls(host, socket=suffix)
        return cls(host)


def single_quote(value: str) -> str:
    """Wrap a value in single quotes for a posix shell.

    Single quotes in the value are replaced by '\\'' : the quoted string is
    closed, an escaped quote is inserted, and a new quoted string is opened.
    """
    escaped = value.replace("'", "'\\''")
    return f"'{escaped}'"


def mysql_cli_credentials(
    credentials: DatabaseCredentials, mask_password: bool = False
) -> str:
    """Render credentials as arguments of the mysql and mysqldump commands.

    Args:
        credentials: Credentials to render.
        mask_password: Replace the password by stars, to display the
                       arguments in logs.

    Returns:
        A string like --user='user' --password='pass' --host=localhost name
    """
    password = "***" if mask_password else single_quote(credentials.password)
    address = ServerAddress.parse(credentials.host)
    arguments = [
        f"--user={single_quote(credentials.user)}",
        f"--password={password}",
        f"--host={quote(address.host)}",
    ]
    if address.port is not None:
        arguments.append(f"--port={address.port}")
    if address.socket is not None:
        arguments.append(f"--socket={quote(address.socket)}")
    arguments.append(quote(credentials.name))
    return " ".join(arguments)


def pdo_dsn(credentials: DatabaseCredentials) -> str:
    """Render credentials as a PHP PDO data source name, without user nor password."""
    address = ServerAddress.parse(credentials.host)
    if address.socket is not None:
        return f"mysql:unix_socket={address.socket};dbname={credentials.name}"
    if address.port is not None:
        return (
            f"mysql:host={address.host};port={address.port};dbname={credentials.name}"
        )
    return f"mysql:host={address.host};dbname={credentials.name}"

"""Scripts uploaded to the remote host.

The scripts run by the site's PHP interpreter are jinja2 templates stored in
the wpzip.templates package directory. Values are inserted in the PHP code as
single quoted string literals, through the php_string filter :

```jinja
$link = mysqli_connect({{ host | php_string }}, ...);
```
"""
from importlib.resources import files

from jinja2 import Environment, PackageLoader, StrictUndefined

DUMPER_VERSION = "1.0"

_DUMPER_RESOURCE = "assets/Mysqldump.php"


def php_string(value: object) -> str:
    """Render a value as a PHP single quoted string literal."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _create_environment() -> Environment:
    environment = Environment(
        loader=PackageLoader("wpzip", "templates"),
        enable_async=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    environment.filters["php_string"] = php_string
    return environment


_ENVIRONMENT = _create_environment()


async def render_script(template_name: str, /, **context: object) -> bytes:
    """Render a script template.

    Args:
        template_name: Name of the template, relative to the templates
            directory.
        **context: Variables available in the template.

    Returns:
        The rendered script, encoded in utf-8.
    """
    template = _ENVIRONMENT.get_template(template_name)
    rendered = await template.render_async(**context)
    return rendered.encode("utf-8")


def dumper_script() -> bytes:
    """Content of the bundled PHP database dumper."""
    return files("wpzip").joinpath(_DUMPER_RESOURCE).read_bytes()

import re
from typing import Mapping, Optional, Union

from web3_query.exceptions import ValidationError
from web3_query.models import Endpoint

_PLACEHOLDER_PATTERN = re.compile(r":([A-Za-z_]\w*)|\{([A-Za-z_]\w*)\}")


def as_endpoint(endpoint: Union[str, Endpoint]) -> Endpoint:
    if isinstance(endpoint, Endpoint):
        return endpoint
    return Endpoint(path=endpoint)


def resolve_path(template: str, values: Mapping[str, Optional[object]]) -> str:
    """
    Fill `:name` and `{name}` placeholders of a path template.

    Args:
        template (str): Path such as "/wallets/:address/history".
        values (Mapping[str, Optional[object]]): Placeholder values. None means
                                                 the value is unavailable.

    Returns:
        str: The path with every placeholder substituted.

    Raises:
        ValidationError: If a placeholder has no value.
    """
    missing = []

    def substitute(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = values.get(name)
        if value is None or value == "":
            missing.append(name)
            return match.group(0)
        return str(value)

    path = _PLACEHOLDER_PATTERN.sub(substitute, template)
    if missing:
        raise ValidationError(
            f"Unresolved placeholder(s) {', '.join(missing)} in endpoint {template}",
        )
    return path

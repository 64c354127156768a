import re
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from web3_query.config import settings
from web3_query.exceptions import CredentialError


def find_credential_file(
    start_dir: Union[str, Path],
    filename: str = settings.credential_file,
) -> Optional[Path]:
    """
    Search `start_dir` and its parents for the credential file.

    Args:
        start_dir (Union[str, Path]): Directory where the search begins.
        filename (str): Name of the credential file.

    Returns:
        Optional[Path]: The first match walking upward, or None.

    Raises:
        CredentialError: If the nearest match is a symbolic link.
    """
    current = Path(start_dir).absolute()
    for directory in (current, *current.parents):
        candidate = directory / filename
        if candidate.is_symlink():
            raise CredentialError(f"Refusing to read symlinked credential file: {candidate}")
        if candidate.is_file():
            return candidate
    return None


def get_api_key(
    start_dir: Union[str, Path, None] = None,
    key_name: str = settings.credential_key,
) -> str:
    """
    Read the API key from the nearest credential file.

    Args:
        start_dir (Union[str, Path, None]): Directory where the search begins.
                                            Defaults to the working directory.
        key_name (str): Variable holding the key.

    Returns:
        str: The API key.

    Raises:
        CredentialError: If no file is found or it holds no `key_name=value` line.
    """
    start = Path(start_dir) if start_dir is not None else Path.cwd()
    path = find_credential_file(start)
    if path is None:
        raise CredentialError(
            "API key not found. Create a .env file with:\n"
            f"  {key_name}=your_key_here\n"
            f"Searched from: {start}"
        )

    logger.debug(f"Reading API key from {path}")
    content = path.read_text(encoding="utf-8")
    match = re.search(rf"^\s*{re.escape(key_name)}=(.+)$", content, re.MULTILINE)
    if not match or not match.group(1).strip():
        raise CredentialError(f"Invalid .env file. Format: {key_name}=your_key_here")
    return match.group(1).strip()

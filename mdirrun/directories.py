from pathlib import Path
from typing import List


def list_subdirectories(root: Path) -> List[str]:
    """Names of the immediate child directories of root, sorted. Raises OSError if root can't be read."""
    root = Path(root)
    # iterdir never yields '.' or '..'
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir())

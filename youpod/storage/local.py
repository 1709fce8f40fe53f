import os
from pathlib import Path

from .base import BaseStorage


class LocalStorage(BaseStorage):
    """Storage rooted at a local directory (the feeds output directory)."""

    def __init__(self, root_dir="feeds"):
        self.root_dir = Path(root_dir)

    def file_exist(self, workspace: str, filename: str) -> bool:
        """
        Check if a file exists in local storage

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """
        return (self.root_dir / self._join(workspace, filename)).is_file()

    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Constructs the absolute filename in local storage.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Return:
            str: The absolute filename in local storage.
        """
        return os.path.abspath(self.root_dir / self._join(workspace, filename))

    def save_file(self, workspace: str, filename: str, content: str) -> str:
        """Saves text content under the storage root.

        The file is written to a temporary name and renamed into place, and
        left untouched when its content is already identical.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file to save.
            content (str): The content to save as text.

        Returns:
            str: The absolute path of the saved file.

        Raises:
            RuntimeError: If the file cannot be written.
        """
        path = Path(self._get_absolute_filename(workspace, filename))
        data = content.encode("utf-8")
        try:
            if path.is_file() and path.read_bytes() == data:
                return str(path)

            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_name(f".{path.name}.tmp")
            temp_path.write_bytes(data)
            os.replace(temp_path, path)
        except OSError as e:
            raise RuntimeError(f"Error saving file to local storage: {e}") from e

        return str(path)

    def list_files(self) -> list[str]:
        """Keys ("/"-separated, relative to the root) of every stored file."""
        if not self.root_dir.is_dir():
            return []
        return sorted(
            path.relative_to(self.root_dir).as_posix()
            for path in self.root_dir.rglob("*")
            if path.is_file() and not path.name.startswith(".")
        )

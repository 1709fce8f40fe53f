from abc import ABC, abstractmethod


class BaseStorage(ABC):
    """
    Abstract base class for storage backends.

    A workspace is a "/"-separated prefix (``podcasts/<slug>``) under the
    backend's root; files are addressed by workspace and filename.
    """

    @abstractmethod
    def file_exist(self, workspace: str, filename: str) -> bool:
        """
        Check if a file exists.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            bool: True if the file exists, False otherwise.
        """

    @abstractmethod
    def save_file(self, workspace: str, filename: str, content: str) -> str:
        """Saves text content to the specified workspace.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file to save.
            content (str): The content to save.

        Returns:
            str: The full path or URL of the saved file.

        Raises:
            RuntimeError: If file saving fails.
        """

    @abstractmethod
    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Constructs the absolute filename/path.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            str: The absolute filename/path.
        """

    @staticmethod
    def _join(workspace: str, filename: str) -> str:
        workspace = workspace.strip("/")
        return f"{workspace}/{filename}" if workspace else filename

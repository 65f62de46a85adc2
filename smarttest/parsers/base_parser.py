"""Abstract base class for source analyzers."""

from abc import ABC, abstractmethod

from ..models.dependency import ModuleStructure


class BaseParser(ABC):
    """
    Abstract base class defining the interface for source analyzers.

    Implementations extract a file's imports, exports, types and function
    signatures. Nothing downstream inspects raw syntax: the resolver, the
    validator and the prompts only see the returned ModuleStructure.
    """

    @abstractmethod
    def parse_file(self, filepath: str) -> ModuleStructure:
        """
        Analyze a source file.

        Parameters
        ----------
        filepath : str
            Absolute or relative path to the source file

        Returns
        -------
        ModuleStructure
            Imports, exports, types and function signatures of the file

        Raises
        ------
        FileNotFoundError
            If the specified file does not exist
        ValueError
            If the file type is not supported
        """
        pass

"""
Key-value storage for the local citation library.

Stores only ever replace the whole library; nothing finer-grained is
assumed to be atomic.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from refmirror.errors import IOFailure
from refmirror.models import Citation


class BaseLibraryStore(ABC):
    """Abstract base for library stores."""

    @abstractmethod
    def load(self) -> List[Citation]:
        """
        Load the whole library.

        Raises:
            IOFailure: If the library cannot be read
        """
        pass

    @abstractmethod
    def save(self, citations: List[Citation]) -> None:
        """
        Replace the whole library.

        Raises:
            IOFailure: If the library cannot be written
        """
        pass


class JsonLibraryStore(BaseLibraryStore):
    """Library persisted as a single JSON document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> List[Citation]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise IOFailure(f"Cannot read library {self.path}: {e}") from e

        if isinstance(data, dict):
            data = data.get('citations', [])
        try:
            return [Citation.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise IOFailure(f"Corrupt library {self.path}: {e}") from e

    def save(self, citations: List[Citation]) -> None:
        payload = {'version': 1, 'citations': [c.to_dict() for c in citations]}

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.library-', suffix='.json')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise IOFailure(f"Cannot write library {self.path}: {e}") from e

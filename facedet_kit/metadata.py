from __future__ import annotations

from pathlib import Path
from typing import Dict, Union


def load_class_names(metadata_path: Union[str, Path]) -> Dict[int, str]:
    """
    Read the `names:` block of a model metadata YAML file:

        names:
          0: face
          1: person

    Only that flat block is understood, which keeps PyYAML out of the
    dependency list. Lines outside it are ignored.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            if not raw.strip() or raw.lstrip().startswith("#"):
                continue
            indented = raw[:1].isspace()
            line = raw.strip()
            if line == "names:":
                in_names = True
                continue
            if in_names and not indented:
                # next top-level key ends the block
                in_names = False
            if not in_names or ":" not in line:
                continue

            key, value = line.split(":", 1)
            key = key.strip()
            if not key.isdigit():
                continue
            names[int(key)] = value.strip().strip("'").strip('"')

    return names

"""
Checkpointing of the variant loop so long batches can be resumed
"""

import warnings
from pathlib import Path
from typing import Tuple, Union, Sequence, Optional


class CheckpointManager:
    """Two-line checkpoint record: last processed variant index, then its name."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def write(self, variant_index: int, variant_name: str) -> None:
        """Replace the checkpoint with the given variant.

        The record goes to a temporary file that is then renamed over the
        checkpoint, so an interrupted write leaves the previous record intact.
        """
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with open(tmp_path, 'w') as f:
            f.write(f"{int(variant_index)}\n{variant_name}\n")
        tmp_path.replace(self.path)

    def read(self) -> Tuple[int, str]:
        """Return (index, name) of the last checkpointed variant.

        Raises:
            FileNotFoundError: If no checkpoint has been written
            ValueError: If the file does not hold an index and a name
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Checkpoint file not found: {self.path}")
        with open(self.path, 'r') as f:
            lines = [line.rstrip('\n') for line in f]
        if len(lines) < 2 or not lines[0].strip():
            raise ValueError(f"Malformed checkpoint file {self.path}: expected index and name lines")
        try:
            index = int(lines[0].strip())
        except ValueError:
            raise ValueError(f"Malformed checkpoint index '{lines[0]}' in {self.path}") from None
        if index < 0:
            raise ValueError(f"Negative checkpoint index {index} in {self.path}")
        return index, lines[1].strip()

    def resume_index(self,
                     variant_names: Optional[Sequence[str]] = None,
                     reprocess_last: bool = True) -> int:
        """Index of the first variant to process when resuming.

        With ``reprocess_last`` the checkpointed variant is run again, so a
        crash between its result file and its checkpoint cannot lose it.
        """
        index, name = self.read()
        if variant_names is not None:
            if index < len(variant_names) and variant_names[index] != name:
                warnings.warn(
                    f"Checkpoint variant '{name}' does not match variant '{variant_names[index]}' "
                    f"at index {index}; resuming by index."
                )
            elif index >= len(variant_names):
                warnings.warn(
                    f"Checkpoint index {index} is beyond the last variant ({len(variant_names) - 1})."
                )
        return index if reprocess_last else index + 1

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

"""Checkpoint encoding/decoding for accumulated Jacobian volumes."""

import os
import tempfile
import numpy as np
import scipy.io
from pathlib import Path
from typing import Dict, Any, Union, Optional


class JacobianCodec:
    """Persist one named [X, Y, Z, T] array.

    Formats, chosen by file suffix:
        - .mat: MATLAB file holding a single variable named `label`
        - .npy: dict with
            - version: codec version
            - label: variable name
            - <label>: [X, Y, Z, T] accumulated volume
            - meta: free-form metadata (pulse count, scene, ...)

    Writes go through a temporary file in the target directory and are
    renamed into place, so a failed write leaves any earlier checkpoint intact.
    """

    VERSION = 1
    DEFAULT_LABEL = "jac_data_integ"

    @classmethod
    def encode(
        cls,
        volume: np.ndarray,
        label: str = DEFAULT_LABEL,
        meta: Optional[Dict[str, Any]] = None,
        compress: bool = False,
    ) -> Dict[str, Any]:
        """Encode a volume to a dict for saving.

        Args:
            volume: [X, Y, Z, T] accumulated volume
            label: variable name
            meta: additional metadata
            compress: store as float16

        Returns:
            dict ready for np.save
        """
        volume = np.asarray(volume)
        if volume.ndim != 4:
            raise ValueError(f"Expected a 4-D volume, got shape {volume.shape}")

        data = {
            "version": cls.VERSION,
            "label": label,
            label: volume.astype(np.float16) if compress else volume,
        }
        if meta is not None:
            data["meta"] = cls._serialize_meta(meta)
        return data

    @classmethod
    def decode(cls, data: Dict[str, Any], label: Optional[str] = None) -> Dict[str, Any]:
        """Decode a loaded dict into {"label", "volume", "meta", "version"}."""
        label = label or data.get("label", cls.DEFAULT_LABEL)
        if label not in data:
            raise KeyError(f"Checkpoint has no array named '{label}'")
        return {
            "label": label,
            "volume": np.asarray(data[label]),
            "meta": data.get("meta", {}),
            "version": data.get("version", 0),
        }

    @classmethod
    def save(
        cls,
        path: Union[str, Path],
        volume: np.ndarray,
        label: str = DEFAULT_LABEL,
        meta: Optional[Dict[str, Any]] = None,
        compress: bool = False,
    ) -> Path:
        """Save a volume; format follows the suffix (.mat or .npy)."""
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in (".mat", ".npy"):
            raise ValueError(f"Unsupported checkpoint format: {path.suffix}")

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=suffix, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                if suffix == ".mat":
                    volume = np.asarray(volume)
                    if volume.ndim != 4:
                        raise ValueError(f"Expected a 4-D volume, got shape {volume.shape}")
                    scipy.io.savemat(f, {label: volume}, do_compression=compress)
                else:
                    np.save(f, cls.encode(volume, label, meta, compress), allow_pickle=True)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        return path

    @classmethod
    def load(cls, path: Union[str, Path], label: Optional[str] = None) -> Dict[str, Any]:
        """Load a checkpoint saved by `save`."""
        path = Path(path)
        if path.suffix.lower() == ".mat":
            mat = scipy.io.loadmat(path)
            names = [k for k in mat if not k.startswith("__")]
            if label is None:
                if len(names) != 1:
                    raise KeyError(f"Checkpoint holds {names}; pass label explicitly")
                label = names[0]
            if label not in mat:
                raise KeyError(f"Checkpoint has no array named '{label}'")
            return {"label": label, "volume": mat[label], "meta": {}, "version": 0}

        data = np.load(path, allow_pickle=True).item()
        return cls.decode(data, label)

    @staticmethod
    def _serialize_meta(meta: Dict[str, Any]) -> Dict[str, Any]:
        """Convert numpy scalars/arrays to plain python types."""
        serialized = {}
        for k, v in meta.items():
            if isinstance(v, np.ndarray):
                serialized[k] = v.tolist()
            elif isinstance(v, (np.floating, np.integer)):
                serialized[k] = float(v) if isinstance(v, np.floating) else int(v)
            elif hasattr(v, "item"):
                serialized[k] = v.item()
            else:
                serialized[k] = v
        return serialized

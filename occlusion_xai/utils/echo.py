# occlusion_xai/utils/echo.py

# Scan And Session Log Lines: "OCC_SCAN_DONE | baseline=0.9000 | failed=2"
# Written Through tqdm.write So They Do Not Break The Occlusion Progress Bar

# Standard Library
from typing import Callable, Dict, Iterable, Optional

# Third-Party
from tqdm import tqdm

# Key Suffix -> Float Precision; Unlisted Float Keys Get 3 Decimals
_PRECISION = (
    (("conf", "baseline", "alpha", "blend", "coverage"), ".4f"),   # confidence-like
    (("sec", "timeout"), ".2f"),                                   # seconds
)


def _fmt_val(key: str, val) -> str:
    if not isinstance(val, float):
        return str(val)
    spec = next((fmt for suffixes, fmt in _PRECISION if key.endswith(suffixes)), ".3f")
    return format(val, spec)


def echo_line(
    tag: str,
    kv_pairs: Dict[str, object],
    order: Optional[Iterable[str]] = None,
    writer: Optional[Callable[[str], None]] = None
) -> None:
    # Keys In `order` Lead; The Rest Follow Alphabetically
    lead = [k for k in (order or []) if k in kv_pairs]
    rest = sorted(k for k in kv_pairs if k not in lead)
    fields = " | ".join(f"{k}={_fmt_val(k, kv_pairs[k])}" for k in lead + rest)
    (writer or tqdm.write)(f"{tag} | {fields}")

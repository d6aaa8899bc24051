# utils/io_utils.py
import os, yaml


def default_config_path() -> str:
    # training.yaml sits next to models/modeling.py
    src_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(src_root, "models", "training.yaml")


def load_config(path: str = None) -> dict:
    """
    Load training.yaml configuration.
    If no path provided, defaults to the training.yaml shipped under models/.
    """
    if path is None:
        path = default_config_path()

    if not os.path.exists(path):
        raise FileNotFoundError(f"training.yaml not found at: {path}")
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    for section in ("split", "gbt", "evaluation", "scaler"):
        cfg.setdefault(section, {})
    return cfg

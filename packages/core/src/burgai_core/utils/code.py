from __future__ import annotations

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".mp4",
    ".mp3",
    ".zip",
    ".tar",
    ".gz",
    ".7z",
    ".lock",  # e.g. package-lock.json, Pipfile.lock
}

# Source languages where a large change carries the most risk.
HIGH_RISK_EXTENSIONS = {"ts", "tsx", "js", "jsx", "py", "java", "go", "rs"}

CONFIG_EXTENSIONS = {"json", "yaml", "yml", "toml"}


def is_code_file(file_name: str) -> bool:
    return not any(file_name.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def file_extension(file_name: str) -> str:
    """Lower-cased extension without the dot; '' for extensionless files and dotfiles."""
    base = file_name.rsplit("/", 1)[-1]
    if "." not in base.lstrip("."):
        return ""
    return base.rsplit(".", 1)[-1].lower()


def is_high_risk(file_name: str) -> bool:
    return file_extension(file_name) in HIGH_RISK_EXTENSIONS

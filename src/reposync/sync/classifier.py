"""Decide whether a file's content should be fetched.

classify() is a pure, ordered first-match rule chain over (path, size).
Recovery re-derives the same verdicts on a restarted job, so nothing
here may depend on time, I/O or mutable state.
"""

from __future__ import annotations

import re

from reposync.constants import DEFAULT_MAX_FILE_SIZE_BYTES, SkipReason
from reposync.sync.schemas import FileCheck

BINARY_EXTENSIONS = frozenset({
    # Images
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp", ".svg",
    ".avif",
    # Fonts
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    # Audio / video
    ".mp3", ".mp4", ".wav", ".ogg", ".webm", ".avi", ".mov", ".flv",
    # Archives
    ".zip", ".tar", ".gz", ".bz2", ".7z", ".rar", ".xz",
    # Documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    # Executables and bytecode
    ".exe", ".dll", ".so", ".dylib", ".bin", ".wasm", ".pyc", ".pyo",
    ".class",
})

LOCK_FILES = frozenset({
    "package-lock.json",
    "pnpm-lock.yaml",
    "yarn.lock",
    "Cargo.lock",
    "Gemfile.lock",
    "poetry.lock",
    "composer.lock",
    "Pipfile.lock",
})

GENERATED_PATTERNS = (
    re.compile(r"\.min\.js$"),
    re.compile(r"\.min\.css$"),
    re.compile(r"\.map$"),
    re.compile(r"\.bundle\.js$"),
    re.compile(r"-bundle\.js$"),
)

# dist/ and build/ are not here: generated output under them is caught
# by GENERATED_PATTERNS, hand-written sources are mirrored.
IGNORED_DIRS = frozenset({
    "node_modules",
    ".git",
    ".svn",
    ".hg",
    "vendor",
    ".next",
    ".nuxt",
    ".output",
    "__pycache__",
    ".cache",
    "coverage",
    ".turbo",
    ".vercel",
})

EXTENSION_LANGUAGES: dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".swift": "swift",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".php": "php",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".less": "less",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
    ".md": "markdown",
    ".sql": "sql",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
    ".fish": "shell",
    ".ps1": "powershell",
    ".dockerfile": "dockerfile",
    ".graphql": "graphql",
    ".gql": "graphql",
    ".vue": "vue",
    ".svelte": "svelte",
    ".elm": "elm",
    ".ex": "elixir",
    ".exs": "elixir",
    ".erl": "erlang",
    ".hs": "haskell",
    ".ml": "ocaml",
    ".scala": "scala",
    ".clj": "clojure",
    ".r": "r",
    ".lua": "lua",
    ".pl": "perl",
    ".perl": "perl",
    ".toml": "toml",
    ".ini": "ini",
    ".prisma": "prisma",
}


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def get_extension(file_name: str) -> str | None:
    """Lower-cased extension including the dot.

    Dotfiles (``.env``) and names without a dot have no extension.
    """
    last_dot = file_name.rfind(".")
    if last_dot <= 0:
        return None
    return file_name[last_dot:].lower()


def should_ignore_path(path: str) -> bool:
    """True when any path segment is an ignored directory."""
    return any(part in IGNORED_DIRS for part in path.split("/"))


def classify(
    path: str,
    size: int,
    max_size: int = DEFAULT_MAX_FILE_SIZE_BYTES,
) -> FileCheck:
    """Return the skip verdict for one file. First matching rule wins."""
    if size > max_size:
        return FileCheck(skip=True, reason=SkipReason.TOO_LARGE)

    if should_ignore_path(path):
        return FileCheck(skip=True, reason=SkipReason.IGNORED_DIRECTORY)

    file_name = _basename(path)
    if file_name in LOCK_FILES:
        return FileCheck(skip=True, reason=SkipReason.LOCK_FILE)

    ext = get_extension(file_name)
    if ext is not None and ext in BINARY_EXTENSIONS:
        return FileCheck(skip=True, reason=SkipReason.BINARY_EXTENSION)

    if any(p.search(file_name) for p in GENERATED_PATTERNS):
        return FileCheck(skip=True, reason=SkipReason.GENERATED_FILE)

    return FileCheck(skip=False)


def detect_language(path: str) -> str | None:
    ext = get_extension(_basename(path))
    if ext is None:
        return None
    return EXTENSION_LANGUAGES.get(ext)


def count_lines(content: str) -> int:
    if not content:
        return 0
    return content.count("\n") + 1

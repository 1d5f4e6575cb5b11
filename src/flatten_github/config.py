from __future__ import annotations

from enum import StrEnum, auto


class OutputFormat(StrEnum):
    """Artifact encodings the exporter can produce."""

    TEXT = auto()
    PDF = auto()

    @property
    def extension(self) -> str:
        """File extension used for artifacts of this format."""
        return "pdf" if self is OutputFormat.PDF else "txt"


GH_API = "https://api.github.com"
USER_AGENT = "flatten-github"

OUT_DIR = "out"
WORK_SUBDIR = ".work"

MAX_TEXT_BLOB_BYTES = 5 * 1024 * 1024
MAX_CONCURRENCY = 8
MAX_RETRIES = 3
RETRY_BASE_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 30.0
AVERAGE_REQUEST_LATENCY_MS = 350
PROGRESS_UPDATE_INTERVAL = 0.1
WRITE_CHUNK_SIZE = 64 * 1024
WRITE_YIELD_EVERY = 10

SAMPLE_BYTES = 2048
NON_PRINTABLE_RATIO = 0.10

LOCKFILE_NAMES: frozenset[str] = frozenset(
    {
        "lockfile",
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "cargo.lock",
        "composer.lock",
        "gemfile.lock",
        "pipfile.lock",
        "poetry.lock",
        "pdm.lock",
        "uv.lock",
        "flake.lock",
        "podfile.lock",
        "packages.lock.json",
        "mix.lock",
        "pubspec.lock",
        "go.sum",
    },
)

LOCKFILE_PATTERNS: tuple[str, ...] = ("*.lock", "*.lockfile", "*-lock.*")

SKIP_EXTENSIONS: frozenset[str] = frozenset(
    {
        # images
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".bmp",
        ".tif",
        ".tiff",
        ".webp",
        ".ico",
        ".icns",
        ".psd",
        ".ai",
        ".eps",
        ".heic",
        ".avif",
        ".raw",
        ".dcm",
        # audio / video
        ".mp3",
        ".wav",
        ".flac",
        ".ogg",
        ".aac",
        ".m4a",
        ".mp4",
        ".m4v",
        ".mov",
        ".avi",
        ".mkv",
        ".webm",
        ".wmv",
        # fonts
        ".ttf",
        ".otf",
        ".woff",
        ".woff2",
        ".eot",
        # archives
        ".zip",
        ".tar",
        ".gz",
        ".tgz",
        ".bz2",
        ".xz",
        ".7z",
        ".rar",
        ".iso",
        ".dmg",
        ".jar",
        ".war",
        ".whl",
        ".nupkg",
        # executables and objects
        ".exe",
        ".dll",
        ".so",
        ".dylib",
        ".bin",
        ".o",
        ".a",
        ".lib",
        ".obj",
        ".class",
        ".pyc",
        ".pyo",
        ".wasm",
        ".apk",
        ".msi",
        # documents and data blobs
        ".pdf",
        ".doc",
        ".docx",
        ".xls",
        ".xlsx",
        ".ppt",
        ".pptx",
        ".sqlite",
        ".sqlite3",
        ".db",
        ".pkl",
        ".npy",
        ".npz",
        ".h5",
        ".parquet",
    },
)

TEXT_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".txt",
        ".md",
        ".markdown",
        ".rst",
        ".py",
        ".pyi",
        ".ipynb",
        ".js",
        ".mjs",
        ".cjs",
        ".jsx",
        ".ts",
        ".tsx",
        ".json",
        ".jsonc",
        ".yaml",
        ".yml",
        ".toml",
        ".ini",
        ".cfg",
        ".conf",
        ".env",
        ".html",
        ".htm",
        ".css",
        ".scss",
        ".less",
        ".svg",
        ".xml",
        ".csv",
        ".tsv",
        ".sh",
        ".bash",
        ".zsh",
        ".fish",
        ".ps1",
        ".bat",
        ".c",
        ".h",
        ".cc",
        ".cpp",
        ".cxx",
        ".hpp",
        ".cs",
        ".java",
        ".kt",
        ".kts",
        ".scala",
        ".go",
        ".rs",
        ".rb",
        ".php",
        ".pl",
        ".lua",
        ".r",
        ".swift",
        ".m",
        ".sql",
        ".graphql",
        ".proto",
        ".tf",
        ".gradle",
        ".dockerfile",
        ".vue",
        ".svelte",
        ".ex",
        ".exs",
        ".erl",
        ".hs",
        ".clj",
        ".dart",
        ".zig",
        ".tex",
    },
)

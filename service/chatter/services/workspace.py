"""
Workspace context provider.

Supplies a snapshot of the file the user is working on so /context questions
can be answered against real code. The active file and an optional selection
are set by whoever drives the workspace (editor integration, CLI, tests).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from chatter.config import Settings

# File suffix -> language id used in fenced code blocks
LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".json": "json",
    ".md": "markdown",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".sh": "shellscript",
    ".sql": "sql",
    ".html": "html",
    ".css": "css",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
}


@dataclass(frozen=True)
class WorkspaceSnapshot:
    """What the model sees about the active document."""
    file_id: str
    language: str
    selected_text: Optional[str] = None
    first_lines: Optional[str] = None
    line_count: int = 0

    def render(self) -> str:
        context = f"File: {self.file_id}\nLanguage: {self.language}\n"
        if self.selected_text:
            context += f"\nSelected code:\n```{self.language}\n{self.selected_text}\n```"
        else:
            context += (
                f"\nFile content (first {self.line_count} lines):\n"
                f"```{self.language}\n{self.first_lines or ''}\n```"
            )
        return context


def detect_language(path: Path) -> str:
    return LANGUAGE_BY_SUFFIX.get(path.suffix.lower(), "plaintext")


class FileWorkspaceProvider:
    """Workspace context backed by a directory on disk."""

    def __init__(self, root: str = ".", active_file: str = "", max_lines: int = 50):
        self.root = Path(root).expanduser().resolve()
        self.max_lines = max_lines
        self._active_file: Optional[Path] = None
        self._selection: Optional[str] = None
        if active_file:
            self.set_active_file(active_file)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FileWorkspaceProvider":
        return cls(
            root=settings.workspace_root,
            active_file=settings.active_file,
            max_lines=settings.context_max_lines,
        )

    def set_active_file(self, path: Optional[str], selection: Optional[str] = None) -> None:
        """Switch the active document; relative paths resolve against the root."""
        if not path:
            self._active_file = None
        else:
            candidate = Path(path).expanduser()
            if not candidate.is_absolute():
                candidate = self.root / candidate
            self._active_file = candidate
        self._selection = selection

    def set_selection(self, selection: Optional[str]) -> None:
        self._selection = selection

    def workspace_name(self) -> Optional[str]:
        return self.root.name if self.root.is_dir() else None

    def active_file(self) -> Optional[str]:
        if self._active_file is None or not self._active_file.is_file():
            return None
        return str(self._active_file)

    def current_context(self) -> Optional[WorkspaceSnapshot]:
        """Snapshot of the active document, or None if there is none."""
        file_id = self.active_file()
        if file_id is None:
            return None

        path = Path(file_id)
        language = detect_language(path)

        if self._selection:
            return WorkspaceSnapshot(
                file_id=file_id,
                language=language,
                selected_text=self._selection,
            )

        lines: list[str] = []
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                if len(lines) >= self.max_lines:
                    break
                lines.append(line.rstrip("\n"))

        return WorkspaceSnapshot(
            file_id=file_id,
            language=language,
            first_lines="\n".join(lines),
            line_count=len(lines),
        )

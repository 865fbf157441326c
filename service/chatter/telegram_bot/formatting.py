"""
Telegram MarkdownV2 formatting helpers.

Model answers are escaped with fenced code blocks left untouched, then split
into chunks that fit Telegram's message limit. Always escape first and chunk
second so a split never lands inside an escape sequence.

A code block that straddles a chunk boundary is closed at the end of one
message and reopened (same language tag) at the start of the next, so every
message carries balanced fences.
"""

import re
from typing import Optional

from telegram.constants import MessageLimit

# Hard limit of a single Telegram message
TELEGRAM_MAX_MESSAGE_LENGTH = MessageLimit.MAX_TEXT_LENGTH  # 4096

# Leaves 96 characters of headroom for formatting overhead
CHUNK_SIZE = 4000

RESERVED_CHARS = "_*[]()~`>#+-=|{}.!"

# Backslash is escaped too: MarkdownV2 reads a bare one as an escape prefix
_RESERVED_RE = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")
_UNESCAPE_RE = re.compile(r"\\([_*\[\]()~`>#+\-=|{}.!\\])")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")

FENCE = "```"
# Language tags longer than this are not carried over to a reopened block
_MAX_LANGUAGE_TAG = 32
_LANGUAGE_TAG_RE = re.compile(r"[\w+#.-]{1,%d}(?=\n)" % _MAX_LANGUAGE_TAG)


def _placeholder(index: int) -> str:
    # NUL never appears in model output and none of these chars are reserved
    return f"\x00CODEBLOCK{index}\x00"


def escape_markdown(text: str) -> str:
    """Backslash-escape every MarkdownV2 reserved character."""
    return _RESERVED_RE.sub(r"\\\1", text)


def escape_and_preserve_code(text: str) -> str:
    """
    Escape reserved characters outside fenced code blocks.

    Code blocks (shortest ``` ... ``` pairs) are swapped for placeholders,
    the rest is escaped, and the blocks are put back verbatim.
    """
    if not text:
        return ""

    code_blocks: list[str] = []

    def _extract(match: re.Match) -> str:
        code_blocks.append(match.group(0))
        return _placeholder(len(code_blocks) - 1)

    formatted = _CODE_BLOCK_RE.sub(_extract, text)
    formatted = escape_markdown(formatted)

    for index, block in enumerate(code_blocks):
        formatted = formatted.replace(_placeholder(index), block, 1)

    return formatted


def _hard_split(line: str, max_len: int) -> list[str]:
    """Cut an over-long line into max_len pieces, never right after an escaping backslash."""
    pieces = []
    while len(line) > max_len:
        cut = max_len
        trailing = len(line[:cut]) - len(line[:cut].rstrip("\\"))
        if trailing % 2 == 1 and cut > 1:
            # The last backslash escapes the first char of the next piece
            cut -= 1
        pieces.append(line[:cut])
        line = line[cut:]
    pieces.append(line)
    return pieces


def chunk(text: str, max_len: int = CHUNK_SIZE) -> list[str]:
    """
    Split text into chunks of at most max_len characters.

    Splits on line boundaries only. A line longer than max_len on its own is
    hard-split, one character short of max_len when the cut would separate
    a backslash from the character it escapes.

    Joining the result with newlines gives back the original text, except
    that hard-split lines gain newlines and a blank line squeezed between two
    full chunks is dropped: it fits in neither neighbour and Telegram rejects
    empty messages. Empty input gives no chunks.
    """
    if max_len <= 0:
        raise ValueError("max_len must be positive")
    if not text:
        return []

    chunks: list[str] = []
    current: list[str] = []
    current_len = 0

    for line in text.split("\n"):
        if current and current_len + 1 + len(line) <= max_len:
            current.append(line)
            current_len += 1 + len(line)
            continue

        if current:
            chunks.append("\n".join(current))

        if len(line) > max_len:
            pieces = _hard_split(line, max_len)
            chunks.extend(pieces[:-1])
            line = pieces[-1]

        current = [line]
        current_len = len(line)

    chunks.append("\n".join(current))

    return [c for c in chunks if c]


def _fence_positions(text: str) -> list[int]:
    positions = []
    start = text.find(FENCE)
    while start != -1:
        positions.append(start)
        start = text.find(FENCE, start + len(FENCE))
    return positions


def _language_tag(text: str, fence_at: int) -> str:
    match = _LANGUAGE_TAG_RE.match(text, fence_at + len(FENCE))
    return match.group(0) if match else ""


def balance_fences(chunks: list[str]) -> list[str]:
    """
    Close a code block left open at the end of a chunk and reopen it in the next.

    Works on escaped text, where every unescaped ``` belongs to a code block.
    """
    balanced = []
    open_tag: Optional[str] = None

    for part in chunks:
        prefix = f"{FENCE}{open_tag}\n" if open_tag is not None else ""
        for position in _fence_positions(part):
            if open_tag is None:
                open_tag = _language_tag(part, position)
            else:
                open_tag = None
        suffix = f"\n{FENCE}" if open_tag is not None else ""
        balanced.append(prefix + part + suffix)

    return balanced


def split_message(formatted: str, max_len: int = CHUNK_SIZE) -> list[str]:
    """Chunk escaped text into messages that are each valid MarkdownV2."""
    if len(formatted) <= TELEGRAM_MAX_MESSAGE_LENGTH:
        return [formatted]
    return balance_fences(chunk(formatted, max_len))


def to_plain_text(formatted: str) -> str:
    """
    Undo MarkdownV2 escaping outside code blocks.

    Used when Telegram refuses a formatted message and it is resent without a
    parse mode. Code blocks keep their fences and content as-is.
    """
    segments = formatted.split(FENCE)
    # Even segments sit outside code blocks
    for index in range(0, len(segments), 2):
        segments[index] = _UNESCAPE_RE.sub(r"\1", segments[index])
    return FENCE.join(segments)

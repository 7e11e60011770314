"""系统提示词加载工具。

从文本文件读取 system prompt，用于构造 ChatMessage(role="system")。
文件缺失或为空时使用默认提示词；非空文件会在末尾追加入站元数据格式说明，
让模型知道用户消息前缀的 <metadata> 块如何排布。
"""

from pathlib import Path
from typing import Optional, Union

from convo_agent.config.settings import settings
from convo_agent.infrastructure.logging.logger import logger


PROMPTS_DIR = Path(__file__).resolve().parent
DEFAULT_PROMPT = "You are a helpful assistant."
METADATA_PROMPT = (
    "\n\n# format of metadata\n"
    "<metadata>\n"
    "Guild: <guild_name> (<guild_id>)\n"
    "Channel: <category_name> > <channel_name> (<channel_id>)\n"
    "User: <user_name> (<user_id>)\n"
    "</metadata>\n"
)


def _resolve(path: Union[str, Path]) -> Path:
    candidate = Path(path).expanduser()
    if candidate.is_absolute() or candidate.exists():
        return candidate
    # 相对路径找不到时，回退到包内自带的提示词目录
    packaged = PROMPTS_DIR / candidate.name
    return packaged if packaged.exists() else candidate


def load_system_prompt(path: Optional[Union[str, Path]] = None) -> str:
    """加载系统提示词文本。"""

    fname = _resolve(path or settings.system_prompt_file)
    try:
        content = fname.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning(
            "Failed to read system prompt, using default",
            extra={"extra": {"path": str(fname), "error": str(exc)}},
        )
        return DEFAULT_PROMPT
    trimmed = content.strip()
    if not trimmed:
        return DEFAULT_PROMPT
    return trimmed + METADATA_PROMPT

"""补全后端配置。

请求组装所需的固定参数集中在 CompletionOptions 里：每个可选字段都有明确的
默认值，值为 None 时对应字段不会出现在请求体中，由后端使用自身默认值。
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CompletionOptions:
    """一个补全后端的固定配置。"""

    model: str
    base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: float = 60.0

    def sampling_fields(self) -> Dict[str, Any]:
        """返回需要写入请求体的采样参数（跳过未设置的字段）。"""

        fields: Dict[str, Any] = {}
        if self.temperature is not None:
            fields["temperature"] = self.temperature
        if self.top_p is not None:
            fields["top_p"] = self.top_p
        if self.max_tokens is not None:
            fields["max_tokens"] = self.max_tokens
        return fields

    @classmethod
    def from_settings(cls, cfg) -> "CompletionOptions":
        return cls(
            model=cfg.openai_model,
            base_url=cfg.openai_base_url,
            api_key=cfg.openai_api_key,
            temperature=cfg.temperature,
            top_p=cfg.top_p,
            max_tokens=cfg.max_tokens,
            timeout=cfg.http_timeout,
        )


from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

REDACTED = "***SECRET***"


class _Section(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class SeoOption(_Section):
    title: str = "Inkwell"
    description: str = "A small personal publishing space"
    keywords: List[str] = Field(default_factory=list)


class UrlOption(_Section):
    web_url: str = "http://127.0.0.1:2323"
    admin_url: str = "http://127.0.0.1:9528"
    server_url: str = "http://127.0.0.1:2333"
    ws_url: str = "http://127.0.0.1:2333"


class SmtpOption(_Section):
    host: str = ""
    port: int = Field(default=465, ge=1, le=65535)
    secure: bool = True


class MailOption(_Section):
    enable: bool = False
    user: str = ""
    # Secret: masked with REDACTED on every outbound read.
    password: Optional[str] = Field(default=None, alias="pass")
    options: SmtpOption = Field(default_factory=SmtpOption)


class CommentOption(_Section):
    anti_spam: bool = False
    spam_keywords: List[str] = Field(default_factory=list)
    block_ips: List[str] = Field(default_factory=list)
    disable_no_chinese: bool = False
    comment_should_audit: bool = False
    disable_comment: bool = False


class BackupOption(_Section):
    enable: bool = False
    bucket: Optional[str] = None
    region: Optional[str] = None
    path: str = "backups"


class TextOption(_Section):
    macros: bool = True


class FriendLinkOption(_Section):
    allow_apply: bool = True
    allow_sub_path: bool = False


class FeatureList(_Section):
    email_subscribe: bool = False


class AdminExtra(_Section):
    title: str = "Inkwell"
    background: str = ""
    enable_admin_proxy: bool = True


class BarkOption(_Section):
    enable: bool = False
    key: str = ""
    server_url: str = "https://day.app"
    enable_comment: bool = True
    enable_throttle_guard: bool = False


class AppOptions(BaseModel):
    """The configuration document: one field per named section."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    seo: SeoOption = Field(default_factory=SeoOption)
    url: UrlOption = Field(default_factory=UrlOption)
    mail_options: MailOption = Field(default_factory=MailOption)
    comment_options: CommentOption = Field(default_factory=CommentOption)
    backup_options: BackupOption = Field(default_factory=BackupOption)
    text_options: TextOption = Field(default_factory=TextOption)
    friend_link_options: FriendLinkOption = Field(default_factory=FriendLinkOption)
    feature_list: FeatureList = Field(default_factory=FeatureList)
    admin_extra: AdminExtra = Field(default_factory=AdminExtra)
    bark_options: BarkOption = Field(default_factory=BarkOption)


MAIL_SECTION = "mailOptions"


def section_aliases() -> Dict[str, str]:
    """Map section alias (as stored and addressed over HTTP) -> model field name."""
    return {(info.alias or name): name for name, info in AppOptions.model_fields.items()}


def resolve_section(key: str) -> Optional[str]:
    """Return the canonical alias for `key` (alias or field name), or None if unknown."""
    if not isinstance(key, str) or not key:
        return None
    for alias, name in section_aliases().items():
        if key in (alias, name):
            return alias
    return None


def section_model(alias: str) -> Type[_Section]:
    name = section_aliases()[alias]
    return AppOptions.model_fields[name].annotation  # type: ignore[return-value]


def to_alias_keys(model: Type[BaseModel], data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Rename field-name keys (the snake_case form reads return) to their aliases,
    recursing into nested models. Unknown keys are passed through untouched so
    validation still rejects them.
    """
    fields: Dict[str, Tuple[str, Any]] = {}
    for name, info in model.model_fields.items():
        alias = info.alias or name
        fields[name] = (alias, info.annotation)
        fields[alias] = (alias, info.annotation)

    out: Dict[str, Any] = {}
    for key, value in data.items():
        alias, annotation = fields.get(key, (key, None))
        if isinstance(value, Mapping) and isinstance(annotation, type) and issubclass(annotation, BaseModel):
            value = to_alias_keys(annotation, value)
        out[alias] = value
    return out


def redact_mail_secret(section: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace a set mail password with REDACTED in a plain (by-alias) mail section, in place."""
    if isinstance(section, dict) and section.get("pass"):
        section["pass"] = REDACTED
    return section

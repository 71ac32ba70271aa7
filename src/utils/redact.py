import re
from typing import Optional
from urllib.parse import quote, quote_plus
from src.models.config import ConnectionConfig

MASK = "***"

# user:password@host 形式的连接串
_URL_CREDENTIALS = re.compile(r"(://[^:/@\s]*:)[^@\s]*(@)")
# key=value 形式的连接参数 (libpq / ODBC)
_KEY_VALUE_PASSWORD = re.compile(r"(?i)\b(password|pwd)\s*=\s*('[^']*'|\"[^\"]*\"|[^;\s]*)")

def scrub(message: str, config: Optional[ConnectionConfig] = None) -> str:
    """
    去除文本中的密码

    Args:
        message: 原始文本，通常是驱动返回的错误信息
        config: 产生该错误的连接配置；提供时其密码字面值也会被替换

    Returns:
        不含凭据的文本
    """
    text = str(message)
    if config is not None and config.password:
        for variant in {config.password, quote(config.password, safe=""), quote_plus(config.password)}:
            text = text.replace(variant, MASK)
    text = _URL_CREDENTIALS.sub(rf"\1{MASK}\2", text)
    text = _KEY_VALUE_PASSWORD.sub(rf"\1={MASK}", text)
    return text

def describe_error(error: BaseException, config: Optional[ConnectionConfig] = None) -> str:
    """SQLAlchemy 异常取底层驱动信息，去掉 SQL 与参数部分"""
    original = getattr(error, "orig", None)
    text = str(original) if original is not None else str(error)
    text = text.strip() or error.__class__.__name__
    return scrub(text, config)

# utils/callback_codec.py
"""
Кодирование callback_data для виджета диалога.

Формат (чувствителен к регистру, '_' — разделитель):

    <prefix><nav_prefix><node_id>
    <prefix><action_prefix><parent_node_id>_<button_label>

Все три префикса — случайные токены, генерируются один раз на экземпляр кодека.
Перезапуск процесса делает недействительными все ранее выданные клавиатуры.
Разделение на пространства имен вероятностное: ID узла, случайно начинающийся с
action_prefix, теоретически возможен, но при длине токена 16 практически исключен.
"""
import random
import string
from dataclasses import dataclass
from typing import Optional, Union

SEPARATOR = "_"
DEFAULT_PREFIX_LENGTH = 16
MIN_PREFIX_LENGTH = 8
# Ограничение Telegram Bot API на длину callback_data в байтах
MAX_CALLBACK_DATA_BYTES = 64

_ALPHABET = string.ascii_letters + string.digits
_rng = random.SystemRandom()


def random_token(length: int = DEFAULT_PREFIX_LENGTH) -> str:
    return ''.join(_rng.choices(_ALPHABET, k=length))


@dataclass(frozen=True)
class NavigatePayload:
    """Переход к узлу node_id."""
    node_id: str


@dataclass(frozen=True)
class ActionPayload:
    """Вызов обработчика кнопки label на узле parent_id."""
    parent_id: str
    label: str


CallbackPayload = Union[NavigatePayload, ActionPayload]


class CallbackCodec:
    """
    Пара encode/decode для callback_data одного DialogRouter.

    Поля записываются только в __init__; после этого объект только читается.
    """

    def __init__(self, prefix_length: int = DEFAULT_PREFIX_LENGTH):
        if prefix_length < MIN_PREFIX_LENGTH:
            raise ValueError(f"prefix_length должен быть не меньше {MIN_PREFIX_LENGTH}, получено {prefix_length}")
        if 2 * prefix_length >= MAX_CALLBACK_DATA_BYTES:
            raise ValueError(f"prefix_length должен быть меньше {MAX_CALLBACK_DATA_BYTES // 2}, получено {prefix_length}")
        self.prefix = random_token(prefix_length)
        self.nav_prefix = random_token(prefix_length)
        self.action_prefix = random_token(prefix_length)

    def encode_navigate(self, node_id: str) -> str:
        return self.prefix + self.nav_prefix + node_id

    def encode_action(self, parent_id: str, label: str) -> str:
        return self.prefix + self.action_prefix + parent_id + SEPARATOR + label

    def encode(self, payload: CallbackPayload) -> str:
        if isinstance(payload, ActionPayload):
            return self.encode_action(payload.parent_id, payload.label)
        return self.encode_navigate(payload.node_id)

    def owns(self, data: Optional[str]) -> bool:
        return bool(data) and data.startswith(self.prefix)

    def decode(self, data: Optional[str]) -> Optional[CallbackPayload]:
        """
        Разбирает callback_data. Возвращает None, если данные не принадлежат этому виджету.

        Действие: остаток после action_prefix делится по первому '_' на (parent_id, label).
        Навигация: nav_prefix отбрасывается, если он есть; иначе весь остаток считается ID узла.
        """
        if not self.owns(data):
            return None
        rest = data[len(self.prefix):]

        if rest.startswith(self.action_prefix):
            parent_id, _, label = rest[len(self.action_prefix):].partition(SEPARATOR)
            return ActionPayload(parent_id=parent_id, label=label)

        if rest.startswith(self.nav_prefix):
            rest = rest[len(self.nav_prefix):]
        return NavigatePayload(node_id=rest)


def fits_callback_data(data: str) -> bool:
    return len(data.encode('utf-8')) <= MAX_CALLBACK_DATA_BYTES

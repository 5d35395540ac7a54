# utils/navigation.py
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton

from utils.callback_codec import CallbackCodec, SEPARATOR, fits_callback_data, MAX_CALLBACK_DATA_BYTES
from utils.error_handler import ConstructionError

logger = logging.getLogger(__name__)

# Обработчик кнопки: (callback, bot) -> None, синхронный или async
ActionHandler = Callable[..., Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class NavigateTo:
    node_id: str


@dataclass(frozen=True)
class ExternalLink:
    url: str


@dataclass(frozen=True)
class CustomAction:
    handler: ActionHandler


ButtonTarget = Union[NavigateTo, ExternalLink, CustomAction]


@dataclass(frozen=True)
class Button:
    """
    Кнопка клавиатуры узла. Ровно одна цель: переход, ссылка или свой обработчик.

    Подпись кнопки с CustomAction входит в callback_data, поэтому она должна быть
    уникальной в пределах узла и не содержать '_'.
    """
    label: str
    target: ButtonTarget

    def __post_init__(self):
        if not isinstance(self.target, (NavigateTo, ExternalLink, CustomAction)):
            raise ConstructionError(f"Кнопка '{self.label}': неизвестный тип цели {type(self.target).__name__}")

    @classmethod
    def navigate(cls, label: str, node_id: str) -> 'Button':
        return cls(label, NavigateTo(node_id))

    @classmethod
    def link(cls, label: str, url: str) -> 'Button':
        return cls(label, ExternalLink(url))

    @classmethod
    def action(cls, label: str, handler: ActionHandler) -> 'Button':
        return cls(label, CustomAction(handler))

    def build(self, codec: CallbackCodec, parent_id: str) -> InlineKeyboardButton:
        if isinstance(self.target, ExternalLink):
            return InlineKeyboardButton(text=self.label, url=self.target.url)
        if isinstance(self.target, CustomAction):
            return InlineKeyboardButton(text=self.label, callback_data=codec.encode_action(parent_id, self.label))
        return InlineKeyboardButton(text=self.label, callback_data=codec.encode_navigate(self.target.node_id))


@dataclass(frozen=True)
class Node:
    """Один экран диалога: текст сообщения и (необязательная) inline-клавиатура."""
    id: str
    text: str
    keyboard: Tuple[Tuple[Button, ...], ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Списки от вызывающего кода превращаем в кортежи, чтобы узел нельзя было изменить
        keyboard = self.keyboard if self.keyboard is not None else ()
        try:
            rows = tuple(tuple(row) for row in keyboard)
        except TypeError as e:
            raise ConstructionError(f"Узел '{self.id}': клавиатура должна быть последовательностью рядов кнопок") from e
        for btn in (btn for row in rows for btn in row):
            if not isinstance(btn, Button):
                raise ConstructionError(f"Узел '{self.id}': элемент клавиатуры {btn!r} не является Button")
        object.__setattr__(self, 'keyboard', rows)

    def buttons(self) -> Iterator[Button]:
        for row in self.keyboard:
            yield from row

    def find_button(self, label: str) -> Optional[Button]:
        """Первая кнопка с точным совпадением подписи (по рядам, затем по столбцам)."""
        for btn in self.buttons():
            if btn.label == label:
                return btn
        return None

    def build_keyboard(self, codec: CallbackCodec) -> Optional[InlineKeyboardMarkup]:
        if not self.keyboard:
            return None
        buttons_rows: List[List[InlineKeyboardButton]] = [
            [btn.build(codec, self.id) for btn in row] for row in self.keyboard
        ]
        return InlineKeyboardMarkup(inline_keyboard=buttons_rows)


class NodeGraph:
    """
    Неизменяемый набор узлов, проиндексированный по ID.
    Дублирующиеся ID — ошибка конструирования.
    """
    def __init__(self, nodes: Iterable[Node]):
        node_map: Dict[str, Node] = {}
        for node in nodes:
            if node.id in node_map:
                raise ConstructionError(f"Обнаружен дублирующийся ID узла: {node.id}")
            node_map[node.id] = node
        self._node_map = MappingProxyType(node_map)
        logger.info(f"NodeGraph инициализирован. Загружено узлов: {len(self._node_map)}")

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._node_map.get(node_id)

    def __contains__(self, node_id: Any) -> bool:
        return node_id in self._node_map

    def __len__(self) -> int:
        return len(self._node_map)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._node_map.values())

    def validate(self, codec: CallbackCodec):
        """
        Проверяет граф против конкретного кодека: длина callback_data и ссылки на узлы.
        Превышение лимита Telegram — ошибка, остальное только предупреждения в лог.
        """
        for node in self:
            for btn in node.buttons():
                if isinstance(btn.target, ExternalLink):
                    continue
                if isinstance(btn.target, CustomAction):
                    if SEPARATOR in btn.label:
                        logger.warning(f"Подпись кнопки-действия '{btn.label}' на узле '{node.id}' содержит '{SEPARATOR}': "
                                       f"обработчик не будет найден при нажатии.")
                    if SEPARATOR in node.id:
                        logger.warning(f"ID узла '{node.id}' содержит '{SEPARATOR}', но на нем есть кнопки-действия: "
                                       f"они не будут маршрутизированы.")
                elif btn.target.node_id not in self:
                    logger.warning(f"Кнопка '{btn.label}' на узле '{node.id}' ведет к несуществующему узлу '{btn.target.node_id}'.")

                data = btn.build(codec, node.id).callback_data
                if not fits_callback_data(data):
                    raise ConstructionError(
                        f"callback_data кнопки '{btn.label}' на узле '{node.id}' длиннее {MAX_CALLBACK_DATA_BYTES} байт. "
                        f"Сократите ID узла или подпись кнопки."
                    )


def build_nodes(spec: Sequence[Dict[str, Any]], actions: Optional[Dict[str, ActionHandler]] = None) -> List[Node]:
    """
    Собирает узлы из простого описания (например, загруженного из JSON):

        {"id": "main", "text": "...", "keyboard": [[{"label": "Go", "node": "b"}],
                                                  [{"label": "Site", "url": "https://..."}],
                                                  [{"label": "Ping", "action": "ping"}]]}

    Имена действий разрешаются через словарь actions.
    """
    actions = actions or {}
    nodes: List[Node] = []
    for node_spec in spec:
        rows: List[List[Button]] = []
        for row_spec in node_spec.get("keyboard", []):
            row: List[Button] = []
            for btn_spec in row_spec:
                label = btn_spec["label"]
                if "url" in btn_spec:
                    row.append(Button.link(label, btn_spec["url"]))
                elif "action" in btn_spec:
                    handler = actions.get(btn_spec["action"])
                    if handler is None:
                        raise ConstructionError(f"Неизвестное действие '{btn_spec['action']}' у кнопки '{label}'")
                    row.append(Button.action(label, handler))
                elif "node" in btn_spec:
                    row.append(Button.navigate(label, btn_spec["node"]))
                else:
                    raise ConstructionError(f"Кнопка '{label}' на узле '{node_spec.get('id')}' не имеет цели")
            rows.append(row)
        nodes.append(Node(id=node_spec["id"], text=node_spec["text"], keyboard=rows))
    return nodes

from dataclasses import dataclass, replace

from infinite_ttt.core.errors import ErrorKind, GameRuleError

Mark = str
MARK_X: Mark = "X"
MARK_O: Mark = "O"
MARKS = (MARK_X, MARK_O)
DRAW = "Draw"

BOARD_SIZE = 9
MAX_PIECES_PER_MARK = 3

# Scan order decides which line is reported if more than one is complete.
WINNING_LINES: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)

Board = tuple[Mark | None, ...]


@dataclass(frozen=True)
class GameState:
    board: Board
    current_player: Mark
    move_history_x: tuple[int, ...] = ()
    move_history_o: tuple[int, ...] = ()
    winner: str | None = None
    winning_line: tuple[int, int, int] | None = None

    def history_for(self, mark: Mark) -> tuple[int, ...]:
        return self.move_history_x if mark == MARK_X else self.move_history_o

    @property
    def is_finished(self) -> bool:
        return self.winner is not None


def other_mark(mark: Mark) -> Mark:
    return MARK_O if mark == MARK_X else MARK_X


def create_new_game() -> GameState:
    return GameState(board=(None,) * BOARD_SIZE, current_player=MARK_X)


def check_winner(board: Board) -> tuple[Mark, tuple[int, int, int]] | None:
    for line in WINNING_LINES:
        a, b, c = line
        if board[a] is not None and board[a] == board[b] == board[c]:
            return board[a], line
    return None


def is_board_full(board: Board) -> bool:
    return all(cell is not None for cell in board)


def _is_position(position: object) -> bool:
    return isinstance(position, int) and not isinstance(position, bool) and 0 <= position < BOARD_SIZE


def validate_move(state: GameState, position: object, mark: Mark) -> None:
    if mark != state.current_player:
        raise GameRuleError(ErrorKind.NOT_YOUR_TURN)
    if state.is_finished:
        raise GameRuleError(ErrorKind.GAME_ALREADY_FINISHED)
    if not _is_position(position):
        raise GameRuleError(ErrorKind.INVALID_POSITION)
    if state.board[position] is not None:
        raise GameRuleError(ErrorKind.CELL_OCCUPIED)


def is_valid_move(state: GameState, position: object, mark: Mark) -> bool:
    try:
        validate_move(state, position, mark)
    except GameRuleError:
        return False
    return True


def apply_move(state: GameState, position: int, mark: Mark) -> GameState:
    """Place ``mark`` at ``position`` and return the successor state.

    Raises GameRuleError without touching ``state`` when the move is illegal.
    A mark's fourth piece evicts its own oldest piece in the same transition.
    """
    validate_move(state, position, mark)

    board = list(state.board)
    history = list(state.history_for(mark))
    history.append(position)
    if len(history) > MAX_PIECES_PER_MARK:
        evicted = history.pop(0)
        board[evicted] = None
    board[position] = mark
    new_board = tuple(board)

    winner: str | None = None
    winning_line = None
    found = check_winner(new_board)
    if found:
        winner, winning_line = found
    elif is_board_full(new_board):
        winner = DRAW

    if mark == MARK_X:
        updated = replace(state, move_history_x=tuple(history))
    else:
        updated = replace(state, move_history_o=tuple(history))
    return replace(
        updated,
        board=new_board,
        current_player=other_mark(mark),
        winner=winner,
        winning_line=winning_line,
    )


def compute_status_text(state: GameState) -> str:
    if state.winner == DRAW:
        return "It's a draw!"
    if state.winner:
        return f"Player {state.winner} wins!"
    return f"Player {state.current_player}'s turn"


def next_removal_position(state: GameState, mark: Mark) -> int | None:
    history = state.history_for(mark)
    if len(history) >= MAX_PIECES_PER_MARK:
        return history[0]
    return None


def valid_moves(state: GameState) -> list[int]:
    if state.is_finished:
        return []
    return [index for index, cell in enumerate(state.board) if cell is None]


def player_move_history(state: GameState, mark: Mark) -> list[int]:
    return list(state.history_for(mark))


def serialize_game_state(state: GameState) -> dict:
    return {
        "board": list(state.board),
        "currentPlayer": state.current_player,
        "moveHistoryX": list(state.move_history_x),
        "moveHistoryO": list(state.move_history_o),
        "winner": state.winner,
        "winningLine": list(state.winning_line) if state.winning_line else None,
    }

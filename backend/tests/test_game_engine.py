import unittest

from infinite_ttt.core.errors import ErrorKind, GameRuleError
from infinite_ttt.services.game_engine import (
    DRAW,
    MARK_O,
    MARK_X,
    GameState,
    apply_move,
    check_winner,
    compute_status_text,
    create_new_game,
    is_board_full,
    is_valid_move,
    next_removal_position,
    player_move_history,
    serialize_game_state,
    valid_moves,
)


def _play(positions: list[int]) -> GameState:
    state = create_new_game()
    for position in positions:
        state = apply_move(state, position, state.current_player)
    return state


def _nearly_full_state() -> GameState:
    """X O X / X O O / O X _ with X to move; cell 8 fills the board with no line."""
    return GameState(
        board=(MARK_X, MARK_O, MARK_X, MARK_X, MARK_O, MARK_O, MARK_O, MARK_X, None),
        current_player=MARK_X,
        move_history_x=(0, 2),
        move_history_o=(1, 4, 5),
    )


def _assert_board_matches_histories(test: unittest.TestCase, state: GameState) -> None:
    for position, cell in enumerate(state.board):
        test.assertEqual(cell == MARK_X, position in state.move_history_x)
        test.assertEqual(cell == MARK_O, position in state.move_history_o)
    test.assertLessEqual(len(state.move_history_x), 3)
    test.assertLessEqual(len(state.move_history_o), 3)


class GameEngineTests(unittest.TestCase):
    def test_new_game_is_empty_with_x_to_move(self) -> None:
        state = create_new_game()
        self.assertEqual(state.board, (None,) * 9)
        self.assertEqual(state.current_player, MARK_X)
        self.assertEqual(state.move_history_x, ())
        self.assertEqual(state.move_history_o, ())
        self.assertIsNone(state.winner)
        self.assertIsNone(state.winning_line)

    def test_move_places_mark_and_passes_turn(self) -> None:
        state = apply_move(create_new_game(), 4, MARK_X)
        self.assertEqual(state.board[4], MARK_X)
        self.assertEqual(state.move_history_x, (4,))
        self.assertEqual(state.current_player, MARK_O)

    def test_input_state_is_not_mutated(self) -> None:
        original = create_new_game()
        apply_move(original, 0, MARK_X)
        self.assertEqual(original, create_new_game())

    def test_fourth_piece_evicts_oldest(self) -> None:
        # X: 0, 4, 8 would win on the diagonal, so use non-winning cells.
        state = _play([0, 3, 1, 4, 5, 8])
        self.assertEqual(state.move_history_x, (0, 1, 5))
        state = apply_move(state, 6, MARK_X)
        self.assertEqual(state.move_history_x, (1, 5, 6))
        self.assertIsNone(state.board[0])
        self.assertEqual(state.board[6], MARK_X)
        _assert_board_matches_histories(self, state)

    def test_board_matches_histories_over_long_game(self) -> None:
        state = create_new_game()
        # A cycle of placements that never completes a line.
        for position in [0, 1, 2, 4, 3, 5, 7, 6, 8, 0, 1, 2, 4, 3, 5]:
            if state.is_finished:
                break
            if state.board[position] is not None:
                continue
            state = apply_move(state, position, state.current_player)
            _assert_board_matches_histories(self, state)

    def test_row_win_reports_line(self) -> None:
        state = _play([0, 4, 1, 5, 2])
        self.assertEqual(state.board, (MARK_X, MARK_X, MARK_X, None, MARK_O, MARK_O, None, None, None))
        self.assertEqual(state.winner, MARK_X)
        self.assertEqual(state.winning_line, (0, 1, 2))
        self.assertEqual(serialize_game_state(state)["winningLine"], [0, 1, 2])

    def test_win_can_use_pieces_after_eviction(self) -> None:
        # Both marks cycle through evictions without completing a line.
        state = _play([0, 3, 1, 4, 5, 8, 6, 7, 2])
        self.assertEqual(state.move_history_x, (5, 6, 2))
        self.assertIsNone(state.winner)
        state = apply_move(state, 0, MARK_O)
        self.assertEqual(state.move_history_o, (8, 7, 0))
        self.assertIsNone(state.board[4])
        _assert_board_matches_histories(self, state)

    def test_rejects_out_of_turn(self) -> None:
        state = create_new_game()
        with self.assertRaises(GameRuleError) as ctx:
            apply_move(state, 0, MARK_O)
        self.assertEqual(ctx.exception.kind, ErrorKind.NOT_YOUR_TURN)
        self.assertEqual(state, create_new_game())

    def test_rejects_after_game_finished(self) -> None:
        state = _play([0, 4, 1, 5, 2])
        with self.assertRaises(GameRuleError) as ctx:
            apply_move(state, 8, MARK_O)
        self.assertEqual(ctx.exception.kind, ErrorKind.GAME_ALREADY_FINISHED)

    def test_rejects_invalid_positions(self) -> None:
        state = create_new_game()
        for position in (-1, 9, 42, True, "3", None):
            with self.subTest(position=position):
                with self.assertRaises(GameRuleError) as ctx:
                    apply_move(state, position, MARK_X)  # type: ignore[arg-type]
                self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_POSITION)

    def test_rejects_occupied_cell(self) -> None:
        state = apply_move(create_new_game(), 4, MARK_X)
        with self.assertRaises(GameRuleError) as ctx:
            apply_move(state, 4, MARK_O)
        self.assertEqual(ctx.exception.kind, ErrorKind.CELL_OCCUPIED)
        self.assertEqual(str(ctx.exception), "Cell already occupied")

    def test_turn_is_checked_before_position(self) -> None:
        with self.assertRaises(GameRuleError) as ctx:
            apply_move(create_new_game(), 99, MARK_O)
        self.assertEqual(ctx.exception.kind, ErrorKind.NOT_YOUR_TURN)

    def test_same_input_gives_same_output(self) -> None:
        state = _play([0, 3, 1])
        self.assertEqual(apply_move(state, 4, MARK_O), apply_move(state, 4, MARK_O))

    def test_draw_on_full_board_without_line(self) -> None:
        board = (MARK_X, MARK_O, MARK_X, MARK_X, MARK_O, MARK_O, MARK_O, MARK_X, MARK_X)
        self.assertTrue(is_board_full(board))
        self.assertIsNone(check_winner(board))
        state = GameState(board=board, current_player=MARK_X, winner=DRAW)
        self.assertEqual(compute_status_text(state), "It's a draw!")

    def test_filling_last_cell_without_line_is_draw(self) -> None:
        # Legal play never fills the board, so start from a hand-built position.
        state = _nearly_full_state()
        result = apply_move(state, 8, MARK_X)
        self.assertTrue(is_board_full(result.board))
        self.assertEqual(result.winner, DRAW)
        self.assertIsNone(result.winning_line)
        self.assertEqual(result.move_history_x, (0, 2, 8))
        self.assertEqual(compute_status_text(result), "It's a draw!")
        with self.assertRaises(GameRuleError) as ctx:
            apply_move(result, 0, MARK_O)
        self.assertEqual(ctx.exception.kind, ErrorKind.GAME_ALREADY_FINISHED)

    def test_check_winner_uses_scan_order(self) -> None:
        board = (MARK_X, MARK_X, MARK_X, MARK_X, None, None, MARK_X, None, None)
        self.assertEqual(check_winner(board), (MARK_X, (0, 1, 2)))

    def test_status_text(self) -> None:
        self.assertEqual(compute_status_text(create_new_game()), "Player X's turn")
        self.assertEqual(compute_status_text(_play([0])), "Player O's turn")
        self.assertEqual(compute_status_text(_play([0, 4, 1, 5, 2])), "Player X wins!")

    def test_helpers(self) -> None:
        state = _play([0, 3, 1, 4, 5])
        self.assertEqual(next_removal_position(state, MARK_X), 0)
        self.assertIsNone(next_removal_position(state, MARK_O))
        self.assertEqual(valid_moves(state), [2, 6, 7, 8])
        self.assertEqual(player_move_history(state, MARK_O), [3, 4])
        self.assertTrue(is_valid_move(state, 2, MARK_O))
        self.assertFalse(is_valid_move(state, 2, MARK_X))
        self.assertFalse(is_valid_move(state, 0, MARK_O))
        self.assertEqual(valid_moves(_play([0, 4, 1, 5, 2])), [])


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import chess


class MoveEngine(Protocol):
    """Legality engine the relay delegates to. The relay never inspects positions itself."""

    def fen(self) -> str: ...

    def move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> Optional[Dict[str, Any]]: ...


class PythonChessEngine:
    """
    MoveEngine backed by python-chess.
    move() returns a description of the played move, or None if illegal.
    """

    def __init__(self, fen: Optional[str] = None) -> None:
        self.board = chess.Board(fen) if fen else chess.Board()

    def fen(self) -> str:
        return self.board.fen()

    def _parse(self, from_square: str, to_square: str, promotion: Optional[str]) -> Optional[chess.Move]:
        try:
            src = chess.parse_square(from_square.lower())
            dst = chess.parse_square(to_square.lower())
            promo = chess.Piece.from_symbol(promotion.lower()).piece_type if promotion else None
        except ValueError:
            return None

        mv = chess.Move(src, dst, promotion=promo)
        if mv in self.board.legal_moves:
            return mv
        # clients often always send a promotion piece; ignore it on ordinary moves
        plain = chess.Move(src, dst)
        if promo is not None and plain in self.board.legal_moves:
            return plain
        return None

    def move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> Optional[Dict[str, Any]]:
        mv = self._parse(from_square, to_square, promotion)
        if mv is None:
            return None

        piece = self.board.piece_at(mv.from_square)
        if self.board.is_en_passant(mv):
            captured: Optional[str] = "p"
        else:
            target = self.board.piece_at(mv.to_square)
            captured = target.symbol().lower() if target and self.board.is_capture(mv) else None

        result = {
            "color": "w" if self.board.turn == chess.WHITE else "b",
            "from": chess.square_name(mv.from_square),
            "to": chess.square_name(mv.to_square),
            "piece": piece.symbol().lower() if piece else None,
            "captured": captured,
            "promotion": chess.piece_symbol(mv.promotion) if mv.promotion else None,
            "san": self.board.san(mv),
        }
        self.board.push(mv)
        return result

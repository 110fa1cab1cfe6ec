#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IncrementalEstimator: 重み付き重要度サンプリングによる価値のインクリメンタル推定

設計方針:
---------
1. テーブル: table[key] -> EstimateEntry(value, cumulative_weight)
   - key は状態 s (V 推定) でも (s, a) ペア (Q 推定) でもよい
   - エントリは最初の観測時に遅延生成する
2. 更新式 (重み付き重要度サンプリング):
       C(s) ← C(s) + W
       V(s) ← V(s) + (W / C(s)) * (G - V(s))
   - 履歴を保持せずに Σ W_i G_i / Σ W_i を維持する
3. 検証: W < 0、W または G が非有限なら拒否し、テーブルは変更しない
   - 累積重みや推定値が溢れる観測も同様に拒否する
4. 排他制御: テーブル全体を 1 つのロックで保護する

どの (key, G, W) を渡すか (first-visit / every-visit、割引考慮、報酬ごと) は
呼び出し側 (episodes.EpisodeProcessor) の責任。
"""

from __future__ import annotations
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple


class EstimatorError(ValueError):
    """推定器への不正な入力"""


class InvalidWeight(EstimatorError):
    """重みが負、または非有限"""


class InvalidReturn(EstimatorError):
    """収益が非有限"""


def _check_real(x: Any, name: str, error: type) -> float:
    # bool は int のサブクラス、文字列は float() で変換できるが、どちらも数値としては受け付けない
    if isinstance(x, (bool, str, bytes, bytearray)):
        raise error(f"{name} must be a real number, got {x!r}")
    try:
        v = float(x)
    except (TypeError, ValueError):
        raise error(f"{name} must be a real number, got {x!r}") from None
    if not math.isfinite(v):
        raise error(f"{name} must be finite, got {x!r}")
    return v


def validate_observation(return_value: Any, weight: Any) -> Tuple[float, float]:
    """(G, W) を検証して float に変換する"""
    w = _check_real(weight, "weight", InvalidWeight)
    if w < 0:
        raise InvalidWeight(f"weight must be non-negative, got {weight!r}")
    g = _check_real(return_value, "return_value", InvalidReturn)
    return g, w


def _mix(value: float, target: float, ratio: float) -> float:
    """value + ratio * (target - value)"""
    diff = target - value
    if math.isfinite(diff):
        return value + ratio * diff
    # 符号の異なる巨大値では差が溢れる
    return (1.0 - ratio) * value + ratio * target


@dataclass
class EstimateEntry:
    """キーごとの推定値と累積重み"""
    value: float = 0.0
    cumulative_weight: float = 0.0

    @property
    def observed(self) -> bool:
        return self.cumulative_weight > 0


class IncrementalEstimator:
    """
    重み付き重要度サンプリングのインクリメンタル推定器

    Attributes:
        default: 未観測キーの初期値 (および value_of の既定値)
    """

    def __init__(self, default: float = 0.0):
        self.default = float(default)
        self._table: Dict[Hashable, EstimateEntry] = {}
        self._lock = threading.Lock()

    def _fold(self, key: Hashable, g: float, w: float) -> float:
        # 呼び出し側でロック取得済み。候補値を計算し、有限なら反映する
        entry = self._table.get(key)
        value = entry.value if entry is not None else self.default
        cumulative = entry.cumulative_weight if entry is not None else 0.0

        new_cumulative = cumulative + w
        if not math.isfinite(new_cumulative):
            raise InvalidWeight(
                f"cumulative weight for {key!r} overflows: {cumulative!r} + {w!r}"
            )

        if new_cumulative == 0:
            # 重み 0 の初回観測: 情報なし
            new_value = value
        elif cumulative == 0:
            new_value = g
        else:
            new_value = _mix(value, g, w / new_cumulative)
        if not math.isfinite(new_value):
            raise InvalidReturn(f"estimate for {key!r} overflows with return {g!r}")

        if entry is None:
            entry = self._table[key] = EstimateEntry(value=self.default)
        entry.value = new_value
        entry.cumulative_weight = new_cumulative
        return entry.value

    def observe(self, key: Hashable, return_value: float, weight: float) -> float:
        """
        1 件の観測 (G, W) を key に反映する

        Args:
            key: 状態または (状態, 行動)
            return_value: 収益 G (有限)
            weight: 重要度サンプリング比 W (有限かつ 0 以上)

        Returns:
            更新後の推定値

        Raises:
            InvalidWeight, InvalidReturn: テーブルは変更されない
        """
        g, w = validate_observation(return_value, weight)
        with self._lock:
            return self._fold(key, g, w)

    def observe_many(self, triples: Iterable[Tuple[Hashable, float, float]]) -> int:
        """
        (key, G, W) の列を順に反映する

        不正な観測に当たった時点で例外を送出する。それより前の観測は反映済み。

        Returns:
            反映した観測数
        """
        count = 0
        for key, return_value, weight in triples:
            self.observe(key, return_value, weight)
            count += 1
        return count

    def value_of(self, key: Hashable, default: Optional[float] = None) -> float:
        """現在の推定値 (未観測・累積重み 0 なら既定値)"""
        if default is None:
            default = self.default
        with self._lock:
            entry = self._table.get(key)
            if entry is None or not entry.observed:
                return default
            return entry.value

    def weight_of(self, key: Hashable) -> float:
        """累積重み C(key) (未観測なら 0)"""
        with self._lock:
            entry = self._table.get(key)
            return entry.cumulative_weight if entry is not None else 0.0

    def estimate(self, key: Hashable) -> Tuple[float, bool]:
        """(推定値, 実際に観測済みか) を返す"""
        with self._lock:
            entry = self._table.get(key)
            if entry is None or not entry.observed:
                return self.default, False
            return entry.value, True

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._table)

    def snapshot(self) -> Dict[Hashable, Tuple[float, float]]:
        """key -> (value, cumulative_weight) のコピー"""
        with self._lock:
            return {
                k: (e.value, e.cumulative_weight)
                for k, e in self._table.items()
            }

    def reset(self) -> None:
        """テーブルを空にする (独立した推定の間で使用)"""
        with self._lock:
            self._table.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._table)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._table

    def __repr__(self) -> str:
        return f"{type(self).__name__}(default={self.default}, keys={len(self)})"


class OrdinaryEstimator(IncrementalEstimator):
    """
    通常の重要度サンプリング推定器

    V(s) = Σ W_i G_i / n(s)

    重み 0 の観測も 1 サンプルとして数える (不偏推定のため)。
    全ての重みが 1 なら重み付き版と同じく単純なサンプル平均になる。

    weight_of / snapshot の累積重みは Σ W_i であり、割る数ではない。
    割る数 n(s) は count_of で、全キー分は snapshot_counts で取得する。
    """

    def __init__(self, default: float = 0.0):
        super().__init__(default)
        self._counts: Dict[Hashable, int] = {}

    def _fold(self, key: Hashable, g: float, w: float) -> float:
        entry = self._table.get(key)
        value = entry.value if entry is not None else self.default
        cumulative = entry.cumulative_weight if entry is not None else 0.0
        n = self._counts.get(key, 0) + 1

        new_cumulative = cumulative + w
        if not math.isfinite(new_cumulative):
            raise InvalidWeight(
                f"cumulative weight for {key!r} overflows: {cumulative!r} + {w!r}"
            )
        sample = w * g
        if n == 1:
            new_value = sample
        else:
            new_value = _mix(value, sample, 1.0 / n)
        if not math.isfinite(new_value):
            raise InvalidReturn(
                f"weighted return {w!r} * {g!r} for {key!r} is not finite"
            )

        if entry is None:
            entry = self._table[key] = EstimateEntry(value=self.default)
        self._counts[key] = n
        entry.value = new_value
        entry.cumulative_weight = new_cumulative
        return entry.value

    def _has_samples(self, key: Hashable) -> bool:
        return self._counts.get(key, 0) > 0

    def value_of(self, key: Hashable, default: Optional[float] = None) -> float:
        if default is None:
            default = self.default
        with self._lock:
            if not self._has_samples(key):
                return default
            return self._table[key].value

    def estimate(self, key: Hashable) -> Tuple[float, bool]:
        with self._lock:
            if not self._has_samples(key):
                return self.default, False
            return self._table[key].value, True

    def count_of(self, key: Hashable) -> int:
        """key に反映した観測数"""
        with self._lock:
            return self._counts.get(key, 0)

    def snapshot_counts(self) -> Dict[Hashable, int]:
        """key -> n(s) のコピー"""
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._table.clear()
            self._counts.clear()

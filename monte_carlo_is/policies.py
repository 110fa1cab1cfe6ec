#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
方策の確率表現

方策は prob(action, state) -> float の callable として扱う。
- TabularPolicy: state -> {action: 確率} の表
- uniform_policy: 合法行動に一様
- epsilon_greedy_probs: Q 値から ε-greedy 方策の確率を計算
"""

from __future__ import annotations
import math
from typing import Any, Callable, Dict, Hashable, Iterable, Mapping

Policy = Callable[[Any, Any], float]


def greedy_action(action_values: Mapping[Hashable, float]) -> Hashable:
    """Q 値最大の行動 (同値なら先に現れた方)"""
    if not action_values:
        raise ValueError("No actions available")

    best_action = None
    best_value = float("-inf")
    for action, q in action_values.items():
        if best_action is None or q > best_value:
            best_action = action
            best_value = q
    return best_action


def epsilon_greedy_probs(
    action_values: Mapping[Hashable, float],
    epsilon: float
) -> Dict[Hashable, float]:
    """
    ε-greedy 方策の行動確率

    全行動に ε/|A|、Q 最大の行動 (同値は等分) に 1-ε を加える

    Args:
        action_values: {action: Q(s, a)}
        epsilon: 探索率 (0.0 ~ 1.0)

    Returns:
        {action: 確率}
    """
    if not action_values:
        raise ValueError("No actions available")
    if not (0.0 <= epsilon <= 1.0):
        raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")

    n = len(action_values)
    best = max(action_values.values())
    ties = [a for a, q in action_values.items() if q == best]

    probs = {a: epsilon / n for a in action_values}
    for a in ties:
        probs[a] += (1.0 - epsilon) / len(ties)
    return probs


def uniform_policy(actions: Iterable[Hashable]) -> Policy:
    """列挙した行動に一様な確率を与える方策"""
    legal = frozenset(actions)
    if not legal:
        raise ValueError("No actions available")
    p = 1.0 / len(legal)

    def prob(action: Any, state: Any) -> float:
        return p if action in legal else 0.0

    return prob


class TabularPolicy:
    """
    表形式の確率的方策

    table[state][action] -> π(a|s)
    表にない状態・行動の確率は 0
    """

    def __init__(self, table: Mapping[Hashable, Mapping[Hashable, float]]):
        self.table: Dict[Hashable, Dict[Hashable, float]] = {}
        for state, dist in table.items():
            dist = {a: float(p) for a, p in dist.items()}
            if any(p < 0 or not math.isfinite(p) for p in dist.values()):
                raise ValueError(f"invalid probability in state {state!r}: {dist}")
            total = sum(dist.values())
            if abs(total - 1.0) > 1e-9:
                raise ValueError(
                    f"probabilities for state {state!r} sum to {total}, expected 1"
                )
            self.table[state] = dist

    @classmethod
    def from_action_values(
        cls,
        q_table: Mapping[Hashable, Mapping[Hashable, float]],
        epsilon: float = 0.0
    ) -> "TabularPolicy":
        """Q テーブルから ε-greedy 方策を作る (epsilon=0 で greedy)"""
        return cls({
            state: epsilon_greedy_probs(values, epsilon)
            for state, values in q_table.items()
        })

    def __call__(self, action: Any, state: Any) -> float:
        return self.table.get(state, {}).get(action, 0.0)

    def __repr__(self) -> str:
        return f"TabularPolicy(states={len(self.table)})"

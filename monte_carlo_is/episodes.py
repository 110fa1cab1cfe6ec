#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
EpisodeProcessor: エピソードを (key, G, W) の観測列に変換する

推定器 (estimator.py) はどの観測を受け取るかに関知しない。
訪問の選択と重要度サンプリング比の計算はここで行う。

モード:
-------
- on-policy (target/behavior なし): W = 1
- "weighted": W = ρ_{t:T-1}  (Q の場合は ρ_{t+1:T-1})
- "discount_aware": 割引を考慮した重み付き重要度サンプリング
    N_t = (1-γ) Σ_{h=t+1}^{T-1} γ^{h-t-1} ρ_{t:h-1} Ḡ_{t:h} + γ^{T-t-1} ρ_{t:T-1} Ḡ_{t:T}
    D_t = (1-γ) Σ_{h=t+1}^{T-1} γ^{h-t-1} ρ_{t:h-1}         + γ^{T-t-1} ρ_{t:T-1}
    観測は (S_t, N_t / D_t, D_t) なので、推定器での畳み込みは Σ N / Σ D になる
- "per_decision": 報酬ごとの重要度サンプリング
    G̃_t = Σ_{k=t}^{T-1} γ^{k-t} ρ_{t:k} R_{k+1}  を W = 1 で出力

ρ_{t:h} = Π_{k=t}^{h} π(A_k|S_k) / b(A_k|S_k)
"""

from __future__ import annotations
from typing import (
    Any, Callable, Hashable, Iterable, Iterator, List, NamedTuple, Optional,
    Sequence, Tuple
)

import numpy as np

Policy = Callable[[Any, Any], float]
Triple = Tuple[Hashable, float, float]

SAMPLING_MODES = ("weighted", "discount_aware", "per_decision")


class Step(NamedTuple):
    """1 ステップ: 状態 S_t で行動 A_t を取り報酬 R_{t+1} を得た"""
    state: Any
    action: Any
    reward: float


def discounted_returns(rewards: Sequence[float], gamma: float = 1.0) -> List[float]:
    """G_t = R_{t+1} + γ G_{t+1} を後ろから計算"""
    returns = [0.0] * len(rewards)
    G = 0.0
    for t in range(len(rewards) - 1, -1, -1):
        G = gamma * G + rewards[t]
        returns[t] = G
    return returns


class EpisodeProcessor:
    """
    エピソードから推定器への観測を生成する

    Attributes:
        gamma: 割引率
        first_visit: True なら各キーの初回訪問のみ
        action_values: True ならキーは (state, action)
        target: 目標方策 π (None なら on-policy)
        behavior: 挙動方策 b (None なら on-policy)
        sampling: 重要度サンプリングの種類
    """

    def __init__(
        self,
        gamma: float = 1.0,
        first_visit: bool = False,
        action_values: bool = False,
        target: Optional[Policy] = None,
        behavior: Optional[Policy] = None,
        sampling: str = "weighted"
    ):
        if not (0.0 <= gamma <= 1.0):
            raise ValueError(f"gamma must be in [0, 1], got {gamma}")
        if (target is None) != (behavior is None):
            raise ValueError("target and behavior policies must be given together")
        if sampling not in SAMPLING_MODES:
            raise ValueError(
                f"unknown sampling {sampling!r} (expected one of {SAMPLING_MODES})"
            )
        if sampling != "weighted":
            if target is None:
                raise ValueError(f"{sampling!r} sampling requires target and behavior policies")
            if action_values:
                raise ValueError(f"{sampling!r} sampling supports state values only")

        self.gamma = float(gamma)
        self.first_visit = first_visit
        self.action_values = action_values
        self.target = target
        self.behavior = behavior
        self.sampling = sampling

    @property
    def off_policy(self) -> bool:
        return self.target is not None

    def _key(self, step: Step) -> Hashable:
        return (step.state, step.action) if self.action_values else step.state

    def _ratios(self, steps: Sequence[Step]) -> np.ndarray:
        """π(A_t|S_t) / b(A_t|S_t) の配列"""
        ratios = np.empty(len(steps))
        for t, step in enumerate(steps):
            b = self.behavior(step.action, step.state)
            if b <= 0:
                raise ValueError(
                    f"behavior policy gives probability {b} to action "
                    f"{step.action!r} taken in state {step.state!r} at t={t}"
                )
            ratios[t] = self.target(step.action, step.state) / b
        return ratios

    def _weighted(self, steps: Sequence[Step], returns: List[float]) -> List[Triple]:
        T = len(steps)
        if not self.off_policy:
            weights = np.ones(T)
        else:
            # tail[t] = ρ_{t:T-1}
            tail = np.cumprod(self._ratios(steps)[::-1])[::-1]
            if self.action_values:
                weights = np.append(tail[1:], 1.0)
            else:
                weights = tail
        return [
            (self._key(step), returns[t], float(weights[t]))
            for t, step in enumerate(steps)
        ]

    def _discount_aware(self, steps: Sequence[Step], rewards: np.ndarray) -> List[Triple]:
        ratios = self._ratios(steps)
        T = len(steps)
        triples = []
        for t in range(T):
            n = T - t
            rho = np.cumprod(ratios[t:])      # rho[j] = ρ_{t:t+j}
            flat = np.cumsum(rewards[t:])     # flat[j] = Ḡ_{t:t+j+1}
            discount = self.gamma ** np.arange(n)
            coef = (1.0 - self.gamma) * discount
            coef[-1] = discount[-1]

            denominator = float(np.sum(coef * rho))
            if denominator == 0:
                triples.append((steps[t].state, 0.0, 0.0))
                continue
            numerator = float(np.sum(coef * rho * flat))
            triples.append((steps[t].state, numerator / denominator, denominator))
        return triples

    def _per_decision(self, steps: Sequence[Step], rewards: np.ndarray) -> List[Triple]:
        ratios = self._ratios(steps)
        T = len(steps)
        triples = []
        for t in range(T):
            rho = np.cumprod(ratios[t:])
            discount = self.gamma ** np.arange(T - t)
            g = float(np.sum(discount * rho * rewards[t:]))
            triples.append((steps[t].state, g, 1.0))
        return triples

    def process(self, episode: Iterable[Any]) -> List[Triple]:
        """
        1 エピソードを観測列に変換

        Args:
            episode: [(state, action, reward), ...] (Step または 3 要素タプル)

        Returns:
            [(key, G, W), ...] (時刻順)
        """
        steps = [Step(*step) for step in episode]
        if not steps:
            return []

        if self.sampling == "weighted":
            returns = discounted_returns([s.reward for s in steps], self.gamma)
            triples = self._weighted(steps, returns)
        else:
            rewards = np.array([s.reward for s in steps], dtype=float)
            if self.sampling == "discount_aware":
                triples = self._discount_aware(steps, rewards)
            else:
                triples = self._per_decision(steps, rewards)

        if not self.first_visit:
            return triples

        seen = set()
        first = []
        for triple in triples:
            if triple[0] in seen:
                continue
            seen.add(triple[0])
            first.append(triple)
        return first

    def process_many(self, episodes: Iterable[Iterable[Any]]) -> Iterator[Triple]:
        for episode in episodes:
            yield from self.process(episode)

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
run.py: 記録済みエピソードから価値関数を推定するスクリプト

使用例:
-------
# on-policy, every-visit で V を推定
python -m monte_carlo_is.run episodes.json

# off-policy (重み付き重要度サンプリング), first-visit で Q を推定
python -m monte_carlo_is.run episodes.json --first-visit --action-values

# 割引考慮 / 報酬ごとの重要度サンプリング
python -m monte_carlo_is.run episodes.json --sampling discount_aware --gamma 0.9

JSON フォーマット:
------------------
{
  "gamma": 0.9,                                  # 省略可 (--gamma が優先)
  "target":   {"<state>": {"<action>": p, ...}}, # 省略可
  "behavior": {"<state>": {"<action>": p, ...}}, # 省略可
  "episodes": [[[state, action, reward], ...], ...]
}
方策表のキーは文字列。状態・行動は str() で変換して引く。
"""

from __future__ import annotations
import argparse
import json
import time
from typing import Any, Dict, Hashable, List, Optional

from .episodes import SAMPLING_MODES, EpisodeProcessor, Step
from .estimator import IncrementalEstimator, OrdinaryEstimator
from .policies import TabularPolicy

ESTIMATORS = {
    "weighted": IncrementalEstimator,
    "ordinary": OrdinaryEstimator,
}


def _hashable(x: Any) -> Hashable:
    """JSON のリストはタプルに変換 (状態キーとして使うため)"""
    if isinstance(x, list):
        return tuple(_hashable(v) for v in x)
    return x


def _string_keyed(policy: TabularPolicy):
    def prob(action: Any, state: Any) -> float:
        return policy(str(action), str(state))
    return prob


def load_data(path: str) -> Dict[str, Any]:
    """エピソード JSON を読み込み、形式を検証する"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict) or "episodes" not in data:
        raise ValueError("JSON must be an object with an 'episodes' list")

    gamma = data.get("gamma", 1.0)
    if isinstance(gamma, bool) or not isinstance(gamma, (int, float)):
        raise ValueError(f"'gamma' must be a number, got {gamma!r}")
    data["gamma"] = float(gamma)

    for name in ("target", "behavior"):
        table = data.get(name)
        if table is None:
            continue
        if not isinstance(table, dict) or not all(isinstance(d, dict) for d in table.values()):
            raise ValueError(f"'{name}' must map each state to an {{action: probability}} object")
        for dist in table.values():
            for p in dist.values():
                if isinstance(p, bool) or not isinstance(p, (int, float)):
                    raise ValueError(f"'{name}' probabilities must be numbers, got {p!r}")

    episodes: List[List[Step]] = []
    for i, episode in enumerate(data["episodes"]):
        steps = []
        for step in episode:
            if not isinstance(step, list) or len(step) != 3:
                raise ValueError(f"episode {i}: each step must be [state, action, reward]")
            state, action, reward = step
            steps.append(Step(_hashable(state), _hashable(action), float(reward)))
        episodes.append(steps)
    data["episodes"] = episodes
    return data


def estimate(
    data: Dict[str, Any],
    gamma: float = 1.0,
    first_visit: bool = False,
    action_values: bool = False,
    sampling: str = "weighted",
    estimator: str = "weighted",
    default: float = 0.0
) -> IncrementalEstimator:
    """
    読み込んだデータから推定器を作り、全エピソードを反映する

    Returns:
        推定器
    """
    target = behavior = None
    if data.get("target") is not None or data.get("behavior") is not None:
        if data.get("target") is None or data.get("behavior") is None:
            raise ValueError("'target' and 'behavior' must be given together")
        target = _string_keyed(TabularPolicy(data["target"]))
        behavior = _string_keyed(TabularPolicy(data["behavior"]))

    processor = EpisodeProcessor(
        gamma=gamma,
        first_visit=first_visit,
        action_values=action_values,
        target=target,
        behavior=behavior,
        sampling=sampling
    )
    est = ESTIMATORS[estimator](default=default)
    est.observe_many(processor.process_many(data["episodes"]))
    return est


def print_table(est: IncrementalEstimator, top: Optional[int] = None) -> None:
    rows = sorted(est.snapshot().items(), key=lambda kv: str(kv[0]))
    if top is not None:
        rows = rows[:top]
    print(f"{'key':30s} {'value':>12s} {'weight':>12s}")
    print("-" * 56)
    for key, (value, weight) in rows:
        print(f"{str(key):30s} {value:12.4f} {weight:12.4f}")


def main(argv: Optional[List[str]] = None) -> IncrementalEstimator:
    parser = argparse.ArgumentParser(
        description="Estimate V or Q from recorded episodes with Monte Carlo importance sampling"
    )
    parser.add_argument(
        "json_path",
        help="Path to episodes JSON file"
    )
    parser.add_argument(
        "--gamma",
        type=float,
        default=None,
        help="Discount factor (default: value in JSON, else 1.0)"
    )
    parser.add_argument(
        "--first-visit",
        action="store_true",
        help="Use first-visit MC (default: every-visit)"
    )
    parser.add_argument(
        "--action-values",
        action="store_true",
        help="Estimate Q(s, a) instead of V(s)"
    )
    parser.add_argument(
        "--sampling",
        choices=SAMPLING_MODES,
        default="weighted",
        help="Importance sampling variant for off-policy data (default: weighted)"
    )
    parser.add_argument(
        "--estimator",
        choices=sorted(ESTIMATORS),
        default="weighted",
        help="Averaging rule (default: weighted)"
    )
    parser.add_argument(
        "--default",
        type=float,
        default=0.0,
        help="Value reported for keys without an estimate (default: 0.0)"
    )
    parser.add_argument(
        "--top",
        type=int,
        default=None,
        help="Print only the first N rows"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress configuration and summary output"
    )

    args = parser.parse_args(argv)
    verbose = not args.quiet

    try:
        data = load_data(args.json_path)
    except (OSError, ValueError, TypeError) as e:
        parser.error(f"cannot load {args.json_path}: {e}")

    gamma = args.gamma if args.gamma is not None else data["gamma"]
    off_policy = data.get("target") is not None

    if verbose:
        print(f"{'='*50}")
        print("Estimation Configuration:")
        print(f"  Episodes: {len(data['episodes'])}")
        print(f"  Gamma: {gamma}")
        print(f"  Values: {'Q(s, a)' if args.action_values else 'V(s)'}")
        print(f"  Visits: {'first-visit' if args.first_visit else 'every-visit'}")
        print(f"  Policy: {'off-policy (' + args.sampling + ')' if off_policy else 'on-policy'}")
        print(f"  Estimator: {args.estimator}")
        print(f"{'='*50}\n")

    start_time = time.time()
    try:
        est = estimate(
            data,
            gamma=gamma,
            first_visit=args.first_visit,
            action_values=args.action_values,
            sampling=args.sampling,
            estimator=args.estimator,
            default=args.default
        )
    except ValueError as e:
        parser.error(str(e))
    elapsed = time.time() - start_time

    print_table(est, top=args.top)

    if verbose:
        print(f"\n{'='*50}")
        print("Estimation Complete!")
        print(f"{'='*50}")
        print(f"Keys estimated: {len(est)}")
        print(f"Time: {elapsed:.3f}s")

    return est


def cli() -> None:
    """コンソールスクリプト用 (終了コードは 0)"""
    main()


if __name__ == "__main__":
    cli()

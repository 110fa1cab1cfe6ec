"""
Monte Carlo Importance Sampling Estimators

このパッケージは、モンテカルロ法による価値推定 (on-policy / off-policy) を提供します。

モジュール:
- estimator.py: IncrementalEstimator (重み付き重要度サンプリング), OrdinaryEstimator
- episodes.py: EpisodeProcessor (エピソード -> (key, G, W) 観測列)
- policies.py: TabularPolicy, ε-greedy 方策の確率
- run.py: 推定スクリプト

使用例:
-------
from monte_carlo_is import EpisodeProcessor, IncrementalEstimator, TabularPolicy

target = TabularPolicy({"s0": {"left": 1.0}})
behavior = TabularPolicy({"s0": {"left": 0.5, "right": 0.5}})
processor = EpisodeProcessor(gamma=0.9, target=target, behavior=behavior)

# 推定
est = IncrementalEstimator()
for episode in episodes:        # [(state, action, reward), ...]
    est.observe_many(processor.process(episode))

est.value_of("s0")
"""

from .episodes import EpisodeProcessor, Step, discounted_returns
from .estimator import (
    EstimateEntry,
    EstimatorError,
    IncrementalEstimator,
    InvalidReturn,
    InvalidWeight,
    OrdinaryEstimator,
)
from .policies import TabularPolicy, epsilon_greedy_probs, greedy_action, uniform_policy

__all__ = [
    "EpisodeProcessor",
    "EstimateEntry",
    "EstimatorError",
    "IncrementalEstimator",
    "InvalidReturn",
    "InvalidWeight",
    "OrdinaryEstimator",
    "Step",
    "TabularPolicy",
    "discounted_returns",
    "epsilon_greedy_probs",
    "greedy_action",
    "uniform_policy",
]

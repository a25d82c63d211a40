"""
Genetic multi-path optimizer.

A chromosome is a set of at most K candidate cycles, each with a share of
the order size. Fitness is the surplus earned when the shares are executed
one after another against a shared view of pool reserves (so two paths that
drain the same pool compete for it), minus gas, plus a small bonus for
path sets that are rare in the current population. Evolution is elitist
with tournament selection and stops at the generation cap or when the
wall-clock budget runs out, whichever comes first; the best chromosome
found so far is always returned.
"""

import math
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .amm_math import estimate_gas, gas_cost_wei
from .config_schema import GeneticConfig
from .constants import BPS_DENOMINATOR
from .detector import simulate_on_views
from .exceptions import SearchError
from .graph import GraphEdge, MarketGraph
from .interfaces import (
    RandomProvider,
    SystemRandomProvider,
    SystemTimeProvider,
    TimeProvider,
    choose,
)
from .pools.base import PoolHandle
from .types import ArbitragePath
from .utils import get_logger

logger = get_logger(__name__)

# Hard stop for cycle enumeration on dense graphs
MAX_ENUMERATION_STEPS = 50000

# Smallest share a gene can shrink to under mutation, in bps
MIN_GENE_WEIGHT = 100


@dataclass
class Gene:
    path_index: int
    weight: int  # bps, relative to the other genes


@dataclass
class Chromosome:
    """
    Candidate allocation of the order across several paths.

    Attributes:
        genes: (candidate index, relative weight in bps) pairs
        surplus: Sum of path profits
        gas_estimate: Gas units over all paths
        feasible: False if any path failed or breached the impact ceiling
        score: surplus minus gas cost
        fitness: score plus diversity bonus, used for selection
        paths: Simulated paths with their allocated volumes
    """

    genes: List[Gene]
    surplus: int = 0
    gas_estimate: int = 0
    feasible: bool = False
    score: float = -math.inf
    fitness: float = -math.inf
    paths: List[ArbitragePath] = field(default_factory=list)

    def signature(self) -> Tuple[int, ...]:
        return tuple(sorted(g.path_index for g in self.genes))

    def rank_key(self) -> Tuple[bool, float]:
        return self.feasible, self.score


@dataclass
class GeneticResult:
    best: Optional[Chromosome]
    runners_up: List[Chromosome]
    generations: int = 0
    evaluations: int = 0
    elapsed_ms: int = 0
    timed_out: bool = False
    cancelled: bool = False

    def candidate_paths(self) -> List[ArbitragePath]:
        """Profitable paths of the best chromosome followed by the runners-up."""
        chromosomes = ([self.best] if self.best else []) + self.runners_up
        return [p for c in chromosomes for p in c.paths if p.expected_profit > 0]


def enumerate_cycles(
    graph: MarketGraph, start_token: str, max_hops: int, limit: int
) -> List[ArbitragePath]:
    """
    Simple cycles through ``start_token`` with negative total weight.

    Parallel pools between the same tokens yield distinct cycles, which is
    what lets the optimizer split flow across fragmented liquidity.

    Returns:
        Up to ``limit`` cycles, most negative weight first
    """
    adjacency: Dict[str, List[GraphEdge]] = {
        token: [e for e in edges if not e.is_dead]
        for token, edges in graph.adjacency.items()
    }
    if start_token not in adjacency:
        return []

    found: List[Tuple[float, List[str], List[PoolHandle]]] = []
    steps = 0
    stack = [(start_token, [start_token], [], 0.0)]

    while stack and steps < MAX_ENUMERATION_STEPS:
        token, tokens, pools, weight = stack.pop()
        steps += 1
        for edge in adjacency.get(token, []):
            total = weight + edge.weight
            if edge.to_token == start_token:
                if len(pools) >= 1 and total < 0 and edge.pool not in pools:
                    found.append((total, tokens + [start_token], pools + [edge.pool]))
            elif edge.to_token not in tokens and len(pools) + 1 < max_hops:
                stack.append((edge.to_token, tokens + [edge.to_token], pools + [edge.pool], total))

    found.sort(key=lambda item: item[0])
    return [ArbitragePath(tokens=t, pools=p) for _, t, p in found[:limit]]


class GeneticPathOptimizer:
    """Elitist GA over multi-path flow splits."""

    def __init__(
        self,
        config: Optional[GeneticConfig] = None,
        random_provider: Optional[RandomProvider] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.config = config or GeneticConfig()
        self.rng = random_provider or SystemRandomProvider()
        self.clock = time_provider or SystemTimeProvider()
        self._lock = threading.Lock()
        self._best_so_far: List[Chromosome] = []

    @property
    def best_so_far(self) -> List[Chromosome]:
        """Top chromosomes of the latest completed generation."""
        with self._lock:
            return list(self._best_so_far)

    def optimize(
        self,
        candidates: List[ArbitragePath],
        order_size: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> GeneticResult:
        """
        Evolve flow allocations of ``order_size`` over ``candidates``.

        Args:
            candidates: Cycles sharing one start token
            order_size: Total input to distribute
            cancel_event: Set by the caller to abandon the run early

        Returns:
            GeneticResult holding the best chromosome found before the
            generation cap, the time budget or cancellation

        Raises:
            SearchError: If the candidates start from different tokens
        """
        start_ms = self.clock.current_time_ms()
        deadline = start_ms + self.config.time_budget_ms
        with self._lock:
            self._best_so_far = []

        if not candidates or order_size <= 0:
            return GeneticResult(best=None, runners_up=[])

        starts = {path.tokens[0] for path in candidates}
        if len(starts) > 1:
            raise SearchError(
                "Candidate cycles start from different tokens",
                strategy="genetic",
                details={"start_tokens": sorted(starts)},
            )

        state = {"evaluations": 0, "timed_out": False, "cancelled": False}

        def out_of_time() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                state["cancelled"] = True
                return True
            if self.clock.current_time_ms() >= deadline:
                state["timed_out"] = True
                return True
            return False

        population: List[Chromosome] = []
        for seed_index in range(min(len(candidates), self.config.population_size // 4)):
            population.append(Chromosome(genes=[Gene(seed_index, BPS_DENOMINATOR)]))
        while len(population) < self.config.population_size:
            population.append(self._random_chromosome(len(candidates)))

        for chromosome in population:
            if out_of_time():
                break
            self._evaluate(chromosome, candidates, order_size)
            state["evaluations"] += 1
        population = population[: state["evaluations"]]
        if not population:
            return GeneticResult(
                best=None,
                runners_up=[],
                elapsed_ms=self.clock.current_time_ms() - start_ms,
                timed_out=state["timed_out"],
                cancelled=state["cancelled"],
            )
        self._apply_diversity(population, order_size)
        self._publish(population)

        generation = 0
        while generation < self.config.max_generations and not out_of_time():
            population.sort(key=lambda c: c.rank_key(), reverse=True)
            next_population = population[: self.config.elite_count]

            while len(next_population) < self.config.population_size:
                if out_of_time():
                    break
                parent_a = self._tournament(population)
                parent_b = self._tournament(population)
                if self.rng.random() < self.config.crossover_rate:
                    child = self._crossover(parent_a, parent_b)
                else:
                    child = Chromosome(genes=[Gene(g.path_index, g.weight) for g in parent_a.genes])
                if self.rng.random() < self.config.mutation_rate:
                    child = self._mutate(child, len(candidates))
                self._evaluate(child, candidates, order_size)
                state["evaluations"] += 1
                next_population.append(child)

            population = next_population
            self._apply_diversity(population, order_size)
            self._publish(population)
            if len(population) < self.config.population_size:
                break
            generation += 1

        best, runners_up = self._select_results(population)
        elapsed = self.clock.current_time_ms() - start_ms
        logger.debug(
            "GA finished: %d generations, %d evaluations, %d ms, timed_out=%s",
            generation,
            state["evaluations"],
            elapsed,
            state["timed_out"],
        )
        return GeneticResult(
            best=best,
            runners_up=runners_up,
            generations=generation,
            evaluations=state["evaluations"],
            elapsed_ms=elapsed,
            timed_out=state["timed_out"],
            cancelled=state["cancelled"],
        )

    def _random_chromosome(self, candidate_count: int) -> Chromosome:
        size = self.rng.randint(1, min(self.config.max_split_paths, candidate_count))
        indices: List[int] = []
        while len(indices) < size:
            index = self.rng.randint(0, candidate_count - 1)
            if index not in indices:
                indices.append(index)
        return Chromosome(genes=[Gene(i, self._random_weight()) for i in indices])

    def _random_weight(self) -> int:
        return self.rng.randint(BPS_DENOMINATOR // 10, BPS_DENOMINATOR)

    def _evaluate(
        self, chromosome: Chromosome, candidates: List[ArbitragePath], order_size: int
    ) -> None:
        total_weight = sum(g.weight for g in chromosome.genes)
        views: Dict[str, PoolHandle] = {}
        surplus = 0
        gas_units = 0
        paths: List[ArbitragePath] = []
        feasible = total_weight > 0

        for gene in chromosome.genes if feasible else []:
            candidate = candidates[gene.path_index]
            volume = order_size * gene.weight // total_weight
            if volume <= 0:
                continue

            sim = simulate_on_views(candidate.tokens, candidate.pools, volume, views)
            if sim.failed or sim.price_impact_bps > self.config.max_price_impact_bps:
                feasible = False
                break

            surplus += sim.profit()
            gas_units += estimate_gas(volume)
            paths.append(
                ArbitragePath(
                    tokens=list(candidate.tokens),
                    pools=list(candidate.pools),
                    volume=volume,
                    expected_profit=sim.profit(),
                    price_impact_bps=sim.price_impact_bps,
                    amounts=sim.amounts,
                )
            )

        chromosome.feasible = feasible and bool(paths)
        chromosome.surplus = surplus
        chromosome.gas_estimate = gas_units
        chromosome.paths = paths
        if chromosome.feasible:
            chromosome.score = float(surplus - gas_cost_wei(gas_units, self.config.gas_price_gwei))
        else:
            chromosome.score = -math.inf
        chromosome.fitness = chromosome.score

    def _apply_diversity(self, population: List[Chromosome], order_size: int) -> None:
        if not population:
            return
        counts = Counter(c.signature() for c in population)
        bonus_scale = order_size * self.config.diversity_bonus_bps / 10000
        for chromosome in population:
            if chromosome.feasible:
                rarity = 1.0 - counts[chromosome.signature()] / len(population)
                chromosome.fitness = chromosome.score + bonus_scale * rarity

    def _tournament(self, population: List[Chromosome]) -> Chromosome:
        contenders = [choose(self.rng, population) for _ in range(self.config.tournament_size)]
        return max(contenders, key=lambda c: (c.feasible, c.fitness))

    def _crossover(self, parent_a: Chromosome, parent_b: Chromosome) -> Chromosome:
        pool: Dict[int, int] = {}
        for gene in parent_a.genes + parent_b.genes:
            if gene.path_index in pool:
                pool[gene.path_index] = (pool[gene.path_index] + gene.weight) // 2
            else:
                pool[gene.path_index] = gene.weight

        genes = [Gene(i, w) for i, w in pool.items() if self.rng.random() < 0.5]
        if not genes:
            index = choose(self.rng, list(pool))
            genes = [Gene(index, pool[index])]
        while len(genes) > self.config.max_split_paths:
            genes.pop(self.rng.randint(0, len(genes) - 1))
        return Chromosome(genes=genes)

    def _mutate(self, chromosome: Chromosome, candidate_count: int) -> Chromosome:
        genes = [Gene(g.path_index, g.weight) for g in chromosome.genes]
        present = {g.path_index for g in genes}
        unused = [i for i in range(candidate_count) if i not in present]
        roll = self.rng.random()

        if roll < 0.4 or (not unused and len(genes) == 1):
            gene = choose(self.rng, genes)
            gene.weight = max(gene.weight * self.rng.randint(50, 150) // 100, MIN_GENE_WEIGHT)
        elif roll < 0.6 and unused and len(genes) < self.config.max_split_paths:
            genes.append(Gene(choose(self.rng, unused), self._random_weight()))
        elif roll < 0.8 and len(genes) > 1:
            genes.pop(self.rng.randint(0, len(genes) - 1))
        elif unused:
            target = self.rng.randint(0, len(genes) - 1)
            genes[target] = Gene(choose(self.rng, unused), genes[target].weight)
        else:
            genes.pop(self.rng.randint(0, len(genes) - 1))
        return Chromosome(genes=genes)

    def _select_results(
        self, population: List[Chromosome]
    ) -> Tuple[Optional[Chromosome], List[Chromosome]]:
        ranked = sorted(
            (c for c in population if c.feasible and c.surplus > 0),
            key=lambda c: c.score,
            reverse=True,
        )
        distinct: List[Chromosome] = []
        seen = set()
        for chromosome in ranked:
            if chromosome.signature() in seen:
                continue
            seen.add(chromosome.signature())
            distinct.append(chromosome)
            if len(distinct) > self.config.runners_up:
                break
        if not distinct:
            return None, []
        return distinct[0], distinct[1:]

    def _publish(self, population: List[Chromosome]) -> None:
        best, runners_up = self._select_results(population)
        with self._lock:
            self._best_so_far = ([best] if best else []) + runners_up

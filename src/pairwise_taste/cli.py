import argparse
import atexit
import json
import logging
import math
import sys
from pathlib import Path

import numpy as np
from scipy.stats import kendalltau
from tqdm import tqdm

from .catalogue import feature_dimension, features_by_id, load_pool
from .config import DEFAULT_REC_LIMIT, STRENGTH_STRATEGIES, TARGET_CHOICES
from .database import close_pool, delete_session_state, init_db, list_sessions
from .engine import Item, PreferenceEngine, Recommendation
from .engine_config import EngineConfig
from .mmr import intra_list_similarity
from .session import FEEDBACK_ACTIONS, SessionRegistry
from .vectors import as_vector, pad_to

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_pool)


def _build_config(args: argparse.Namespace) -> EngineConfig:
    overrides = {}
    if getattr(args, "strategy", None):
        overrides["strategy"] = args.strategy
    if getattr(args, "max_rounds", None):
        overrides["max_rounds"] = args.max_rounds
    preset = getattr(args, "preset", None)
    if preset:
        return EngineConfig.preset(preset, **overrides)
    return EngineConfig(**overrides)


def _registry(args: argparse.Namespace) -> SessionRegistry:
    init_db()
    return SessionRegistry(PreferenceEngine(_build_config(args)), persist=True)


def _lookup(pool: list[Item], item_id: str) -> Item:
    for item in pool:
        if item.id == item_id:
            return item
    raise ValueError(f"Unknown item id: {item_id}")


def _describe(item: Item) -> dict:
    return {
        "id": item.id,
        "title": item.title,
        "posterUrl": item.poster_url,
        "trailerKey": item.trailer_key,
    }


def cmd_pair(args: argparse.Namespace) -> None:
    """Show the next pair for a session."""
    pool = load_pool(args.catalogue)
    with _registry(args).hold(args.session) as session:
        pair = session.next_pair(pool)
    if pair is None:
        logger.info("All caught up - no more pairs. Run 'recommend' for your picks.")
        return
    print(json.dumps({"a": _describe(pair[0]), "b": _describe(pair[1])}, indent=2))


def cmd_vote(args: argparse.Namespace) -> None:
    """Record which of two shown items won."""
    pool = load_pool(args.catalogue)
    item_a, item_b = _lookup(pool, args.a), _lookup(pool, args.b)
    with _registry(args).hold(args.session) as session:
        session.vote(item_a, item_b, args.winner)
        rounds = session.state.rounds
    logger.info(f"Recorded round {rounds}: {args.a if args.winner.upper() == 'A' else args.b} wins")


def _output_recommendations(recs: list[Recommendation], pool: list[Item], args: argparse.Namespace) -> None:
    by_id = {item.id: item for item in pool}
    diversity = None
    if args.diversity_report:
        chosen = [by_id[r.id] for r in recs]
        diversity = round(intra_list_similarity(chosen, PreferenceEngine.similarity), 3)

    if args.format == "json":
        payload = {"items": [r.to_dict() for r in recs]}
        if diversity is not None:
            payload["intraListSimilarity"] = diversity
        print(json.dumps(payload, indent=2))
        return

    logger.info(f"\nTop {len(recs)} recommendations:")
    for i, r in enumerate(recs, 1):
        logger.info(f"{i}. {r.title or r.id} - Score: {r.score:.3f}")
        logger.info(f"   Why: {r.reason}")
    if diversity is not None:
        logger.info(f"\nIntra-list similarity: {diversity} (lower is more diverse)")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Diversified top-K for a session."""
    pool = load_pool(args.catalogue)
    with _registry(args).hold(args.session) as session:
        recs = session.recommendations(pool, k=args.limit, lam=args.mmr_lambda)
    if not recs:
        logger.info("Nothing left to recommend - everything is seen or blocked.")
        return
    _output_recommendations(recs, pool, args)


def cmd_feedback(args: argparse.Namespace) -> None:
    with _registry(args).hold(args.session) as session:
        session.feedback(args.item_id, args.action)
    logger.info(f"Marked {args.item_id} as {args.action}")


def cmd_reset(args: argparse.Namespace) -> None:
    if args.forget:
        init_db()
        removed = delete_session_state(args.session)
        logger.info(f"Session '{args.session}' {'deleted' if removed else 'had no stored snapshot'}")
        return
    with _registry(args).hold(args.session) as session:
        session.reset()
    logger.info(f"Session '{args.session}' reset")


def cmd_status(args: argparse.Namespace) -> None:
    registry = _registry(args)
    with registry.hold(args.session) as session:
        state = session.state
        engine = session.engine
        top_rated = sorted(state.ratings.items(), key=lambda kv: kv[1].strength, reverse=True)[:args.limit]
        top_features = engine.learner.top_features(state, args.limit)

    logger.info(f"\nSession '{args.session}' ({state.strategy}):")
    logger.info(f"  Phase: {state.phase.value}")
    logger.info(f"  Rounds: {state.rounds}")
    logger.info(f"  Rated items: {len(state.ratings)}")
    logger.info(f"  Pairs shown: {len(state.pairs_shown)}")
    logger.info(f"  Seen/blocked: {len(state.seen)}/{len(state.blocked)}")
    if top_rated:
        logger.info("  Strongest items:")
        for item_id, rating in top_rated:
            logger.info(
                f"    {item_id}: {rating.strength:.3f} "
                f"({rating.wins}W/{rating.losses}L, uncertainty {engine.model.uncertainty(state, item_id):.2f})"
            )
    if top_features:
        logger.info("  Strongest feature weights: " + ", ".join(f"#{i}={w:.2f}" for i, w in top_features))

    if args.verbose:
        for row in list_sessions():
            logger.debug(f"  stored session {row['session_id']}: {row['rounds']} rounds, updated {row['updated_at']}")


def cmd_play(args: argparse.Namespace) -> None:
    """Interactive elicitation loop on stdin."""
    pool = load_pool(args.catalogue)
    registry = _registry(args)
    played = 0
    while played < args.rounds:
        with registry.hold(args.session) as session:
            pair = session.next_pair(pool)
            if pair is None:
                logger.info("All caught up!")
                break
            a, b = pair
            logger.info(f"\n[A] {a.title or a.id}\n[B] {b.title or b.id}")
            answer = input("Pick A or B (q to stop): ").strip().upper()
            # the pair is already recorded as shown, so keep asking until it is answered
            while answer not in ("A", "B", "Q"):
                logger.info("Please answer A or B")
                answer = input("Pick A or B (q to stop): ").strip().upper()
            if answer == "Q":
                break
            session.vote(a, b, answer)
            played += 1

    with registry.hold(args.session) as session:
        recs = session.recommendations(pool, k=args.limit)
    args.format, args.diversity_report = "text", True
    _output_recommendations(recs, pool, args)


def run_simulation(
    pool: list[Item],
    engine: PreferenceEngine,
    rounds: int,
    rng: np.random.Generator,
    show_progress: bool = True,
) -> dict:
    """
    Play ``rounds`` comparisons for a synthetic user with a hidden linear taste.

    Returns Kendall's tau between the engine's relevance scores and the hidden
    utilities over the whole pool.
    """
    dim = feature_dimension(pool)
    hidden = rng.standard_normal(dim)
    utility = {item.id: float(pad_to(as_vector(item.features), dim) @ hidden) for item in pool}
    feats = features_by_id(pool)
    ids = [item.id for item in pool]

    state = engine.new_state()
    played = 0
    for _ in tqdm(range(rounds), desc="Rounds", disable=not show_progress):
        pair = engine.select_next_pair(state, ids, feats)
        if pair is None:
            break
        a, b = pair
        winner, loser = (a, b) if utility[a] >= utility[b] else (b, a)
        engine.apply_outcome(state, winner, loser, feats[winner], feats[loser])
        played += 1

    learned = [engine.relevance(state, item) for item in pool]
    truth = [utility[item.id] for item in pool]
    tau = kendalltau(learned, truth)[0] if len(pool) > 1 else float("nan")
    return {
        "rounds": played,
        "items": len(pool),
        "kendall_tau": None if math.isnan(tau) else round(float(tau), 4),
        "phase": state.phase.value,
    }


def cmd_simulate(args: argparse.Namespace) -> None:
    """Measure how well the engine recovers a synthetic taste."""
    pool = load_pool(args.catalogue)
    rng = np.random.default_rng(args.seed)
    engine = PreferenceEngine(_build_config(args), rng=rng)
    result = run_simulation(pool, engine, args.rounds, rng)
    print(json.dumps(result, indent=2))


def main():
    parser = argparse.ArgumentParser(description="Pairwise taste elicitation")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--session", default="default", help="Session id (opaque lookup key)")
    parser.add_argument("--strategy", choices=STRENGTH_STRATEGIES, help="Strength model (default from config)")
    parser.add_argument("--preset", choices=["interactive", "server"], help="Named constant preset")
    parser.add_argument("--max-rounds", type=int, help="Stop offering pairs after N rounds")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pair_parser = subparsers.add_parser("pair", help="Show the next comparison")
    pair_parser.add_argument("catalogue", type=Path, help="Hydrated catalogue JSON")
    pair_parser.set_defaults(func=cmd_pair)

    vote_parser = subparsers.add_parser("vote", help="Record a comparison outcome")
    vote_parser.add_argument("catalogue", type=Path, help="Hydrated catalogue JSON")
    vote_parser.add_argument("a", help="Id shown as A")
    vote_parser.add_argument("b", help="Id shown as B")
    vote_parser.add_argument("--winner", choices=["A", "B", "a", "b"], required=True, help="Which side won")
    vote_parser.set_defaults(func=cmd_vote)

    rec_parser = subparsers.add_parser("recommend", help="Diversified recommendations")
    rec_parser.add_argument("catalogue", type=Path, help="Hydrated catalogue JSON")
    rec_parser.add_argument("--limit", type=int, default=DEFAULT_REC_LIMIT, help="Number of recommendations")
    rec_parser.add_argument("--lambda", dest="mmr_lambda", type=float,
                            help="MMR trade-off in [0, 1] (1 = relevance only)")
    rec_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    rec_parser.add_argument("--diversity-report", action="store_true",
                            help="Report intra-list similarity of the result")
    rec_parser.set_defaults(func=cmd_recommend)

    feedback_parser = subparsers.add_parser("feedback", help="Mark an item seen or blocked")
    feedback_parser.add_argument("item_id", help="Item id")
    feedback_parser.add_argument("--action", choices=FEEDBACK_ACTIONS, required=True)
    feedback_parser.set_defaults(func=cmd_feedback)

    reset_parser = subparsers.add_parser("reset", help="Clear all learned preferences for a session")
    reset_parser.add_argument("--forget", action="store_true", help="Also delete the stored snapshot")
    reset_parser.set_defaults(func=cmd_reset)

    status_parser = subparsers.add_parser("status", help="Show what the session has learned")
    status_parser.add_argument("--limit", type=int, default=5, help="Items/features to list")
    status_parser.set_defaults(func=cmd_status)

    play_parser = subparsers.add_parser("play", help="Interactive A/B loop")
    play_parser.add_argument("catalogue", type=Path, help="Hydrated catalogue JSON")
    play_parser.add_argument("--rounds", type=int, default=TARGET_CHOICES, help="Comparisons to play")
    play_parser.add_argument("--limit", type=int, default=DEFAULT_REC_LIMIT, help="Recommendations at the end")
    play_parser.set_defaults(func=cmd_play)

    sim_parser = subparsers.add_parser("simulate", help="Run a synthetic user against the engine")
    sim_parser.add_argument("catalogue", type=Path, help="Hydrated catalogue JSON")
    sim_parser.add_argument("--rounds", type=int, default=TARGET_CHOICES, help="Comparisons to simulate")
    sim_parser.add_argument("--seed", type=int, default=0, help="Random seed")
    sim_parser.set_defaults(func=cmd_simulate)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except ValueError as exc:
        logger.error(str(exc))
        sys.exit(2)


if __name__ == "__main__":
    main()

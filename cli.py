import argparse
import logging
import math
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple, Union

from constrained_markov import __version__
from constrained_markov.config.random_state import resolve_seed
from constrained_markov.config.settings import Settings, find_default_config
from constrained_markov.config.validate import check_environment, print_environment_info
from constrained_markov.core.transition_model import TransitionModel, train
from constrained_markov.core.emission_model import HiddenMarkovModel, train_hidden
from constrained_markov.data.corpus import read_corpus, print_sequences, write_sequences
from constrained_markov.data.sequence_generator import HiddenSequenceGenerator, SequenceGenerator
from constrained_markov.exceptions import (ConfigurationError, ConstrainedMarkovError,
                                           InvalidConstraintError, UnsatisfiableConstraintsError)

LOG_DIR = Path("logs")

# Exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USER_ERROR = 2


def _setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure root logger to log to stderr and a log file.

    Args:
        verbose: If ``True`` set console log level to ``DEBUG`` else ``INFO``.
        log_file: Optional path to a log file. If ``None`` a timestamped file is
            created under ``logs/``.
    """
    if log_file is None:
        LOG_DIR.mkdir(exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = LOG_DIR / f"cli_{timestamp}.log"

    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    handlers = []

    # Console handler; stdout is reserved for generated sequences
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(console_handler)

    # File handler (always DEBUG for maximum detail)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers)
    logging.debug("Logging initialised. Log file: %s", log_file)


# -----------------------------------------------------------------------------
# Shared helpers
# -----------------------------------------------------------------------------

def _resolve_settings(args: argparse.Namespace) -> Settings:
    """Merge config file values with command-line overrides.

    Command-line flags win over the config file, which wins over defaults.

    Raises:
        FileNotFoundError: If an explicitly given config file is missing.
        ConfigurationError: If the merged values are invalid.
    """
    logger = logging.getLogger(__name__)

    config_path = args.config if args.config is not None else find_default_config()
    if config_path is not None:
        logger.info("Loading configuration from %s", config_path)
        settings = Settings.from_file(config_path)
    else:
        settings = Settings()

    return settings.update(
        training_file=args.file,
        markov_order=args.order,
        n_sequences=args.sequences,
        sequence_length=args.length,
        random_seed=args.seed,
        output_file=args.out,
        unseen_context=args.unseen_context,
        n_parallel=args.parallel,
        hidden_model=args.hidden or None,
        verbose=args.verbose or None,
    )


def _train_model(settings: Settings) -> Union[TransitionModel, HiddenMarkovModel]:
    logger = logging.getLogger(__name__)
    if settings.training_file is None:
        raise ConfigurationError("training_file is required: pass --file or set it in the config")

    corpus = read_corpus(settings.training_file)
    start = time.perf_counter()
    if settings.hidden_model:
        model = train_hidden(corpus, settings.markov_order, unseen_context=settings.unseen_context,
                             separator=settings.token_separator)
    else:
        model = train(corpus, settings.markov_order, unseen_context=settings.unseen_context)
    logger.info("Training took %.3fs", time.perf_counter() - start)
    return model


Generator = Union[SequenceGenerator, HiddenSequenceGenerator]


def _build_generator(args: argparse.Namespace) -> Tuple[Settings, Generator]:
    settings = _resolve_settings(args)
    model = _train_model(settings)
    if settings.hidden_model:
        generator = HiddenSequenceGenerator(model, settings.constraints, settings.sequence_length,
                                            separator=settings.token_separator)
    else:
        generator = SequenceGenerator(model, settings.constraints, settings.sequence_length)
    return settings, generator


def _print_constraints(layer: Optional[str], constraints) -> None:
    prefix = f"{layer} " if layer else ""
    for position, allowed in constraints.as_dict().items():
        print(f"  {prefix}position {position}: {', '.join(sorted(str(s) for s in allowed))}")


def _report_user_error(exc: Exception) -> None:
    logger = logging.getLogger(__name__)
    if isinstance(exc, InvalidConstraintError):
        logger.error("Invalid constraint (position=%s, symbol=%r): %s", exc.position, exc.symbol, exc)
    elif isinstance(exc, UnsatisfiableConstraintsError):
        logger.error("Constraints cannot be satisfied (position=%s): %s", exc.position, exc)
    else:
        logger.error("%s: %s", type(exc).__name__, exc)


# -----------------------------------------------------------------------------
# Sub-command implementations
# -----------------------------------------------------------------------------

def _cmd_generate(args: argparse.Namespace) -> int:
    """Entry point for the ``generate`` sub-command."""
    logger = logging.getLogger(__name__)

    try:
        settings, generator = _build_generator(args)
        seed = resolve_seed(settings.random_seed)
        logger.info("Generating %d sequence(s) of length %d (seed=%s)",
                    settings.n_sequences, generator.length, seed)

        start = time.perf_counter()
        sequences = generator.generate(settings.n_sequences, seed=seed, n_parallel=settings.n_parallel)
        logger.info("Generation took %.3fs", time.perf_counter() - start)

        if settings.output_file is not None:
            write_sequences(sequences, settings.output_file)
        else:
            print_sequences(sequences)
        return EXIT_OK
    except (ConstrainedMarkovError, FileNotFoundError) as exc:
        _report_user_error(exc)
        return EXIT_USER_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Generation failed: %s", exc)
        return EXIT_FAILURE


def _cmd_check(args: argparse.Namespace) -> int:
    """Entry point for the ``check`` sub-command."""
    logger = logging.getLogger(__name__)

    try:
        settings, generator = _build_generator(args)
    except (ConstrainedMarkovError, FileNotFoundError) as exc:
        _report_user_error(exc)
        return EXIT_USER_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Check failed: %s", exc)
        return EXIT_FAILURE

    summary = generator.model.summary()
    if isinstance(generator, HiddenSequenceGenerator):
        print(f"Model: hidden, order {summary['order']}, {summary['hidden_alphabet_size']} tags, "
              f"{summary['observed_alphabet_size']} observed tokens, {summary['n_contexts']} contexts")
        print(f"Length: {generator.length}")
        _print_constraints("observed", generator.observed_constraints)
        _print_constraints("hidden", generator.hidden_constraints)
    else:
        print(f"Model: order {summary['order']}, {summary['alphabet_size']} symbols, "
              f"{summary['n_contexts']} contexts, {summary['n_windows']} windows")
        print(f"Length: {generator.length}")
        _print_constraints(None, generator.constraints)
    log_z = generator.log_partition
    print(f"Log probability of satisfying the constraints: {log_z:.6f} "
          f"(p = {math.exp(log_z):.3e})")
    return EXIT_OK


def _cmd_env(args: argparse.Namespace) -> int:
    """Entry point for the ``env`` sub-command."""
    logger = logging.getLogger(__name__)
    print_environment_info()
    try:
        check_environment()
    except RuntimeError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    return EXIT_OK


# -----------------------------------------------------------------------------
# Argument parsing
# -----------------------------------------------------------------------------

def _add_model_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML/JSON/TOML configuration file (default: ./config.yaml if present).",
    )
    parser.add_argument("--file", "-f", type=str, default=None, help="Training corpus file.")
    parser.add_argument("--order", "-m", type=int, default=None, help="Markov order.")
    parser.add_argument("--length", "-l", type=int, default=None,
                        help="Sequence length (default: implied by the constraint lines).")
    parser.add_argument("--unseen-context", choices=["reject", "uniform"], default=None,
                        help="Behaviour for contexts never seen in training.")
    parser.add_argument("--hidden", action="store_true",
                        help="Train a hidden Markov model from observed:hidden tokens.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Constrained Markov sequence generator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging output.",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Log file path.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub_parsers = parser.add_subparsers(dest="command", required=True)

    # generate ----------------------------------------------------------------
    gen_parser = sub_parsers.add_parser(
        "generate",
        help="Train a model and generate constrained sequences",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_model_arguments(gen_parser)
    gen_parser.add_argument("--sequences", "-n", type=int, default=None,
                            help="Number of sequences to generate.")
    gen_parser.add_argument("--seed", type=int, default=None,
                            help="Random seed (default: $CONSTRAINED_MARKOV_SEED or OS entropy).")
    gen_parser.add_argument("--out", "-o", type=str, default=None,
                            help="Output file (default: print to stdout).")
    gen_parser.add_argument("--parallel", "-p", type=int, default=None,
                            help="Worker threads for drawing sequences.")
    gen_parser.set_defaults(func=_cmd_generate)

    # check -------------------------------------------------------------------
    check_parser = sub_parsers.add_parser(
        "check",
        help="Validate configuration and report constraint satisfiability",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_model_arguments(check_parser)
    check_parser.set_defaults(func=_cmd_check, sequences=None, seed=None, out=None, parallel=None)

    # env ---------------------------------------------------------------------
    env_parser = sub_parsers.add_parser("env", help="Show dependency versions")
    env_parser.set_defaults(func=_cmd_env)

    return parser


# -----------------------------------------------------------------------------
# Main entry point
# -----------------------------------------------------------------------------

def main(argv: Optional[list] = None) -> None:
    """CLI entry point. Parse ``argv`` and dispatch to sub-command implementation."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    # Logging must be set up *after* parsing to respect --verbose flag.
    _setup_logging(verbose=args.verbose, log_file=args.log_file)

    exit_code = args.func(args)  # type: ignore[attr-defined]
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

import argparse
import json
import logging
import sys

from .core import OptionType, CALL
from .errors import OptionModelError
from .model import ConvergencePolicy, OptionModel


def _kind(s: str):
    try:
        return OptionType.parse(s)
    except ValueError:
        raise argparse.ArgumentTypeError("kind must be 'call' or 'put'") from None


def add_common(parser: argparse.ArgumentParser, strike: str = "given"):
    """``strike`` is "given" (--strike), "solved" (--delta) or "either"."""
    parser.add_argument("--underlying", type=float, required=True, help="spot price")
    if strike == "given":
        parser.add_argument("--strike", type=float, required=True)
    elif strike == "solved":
        parser.add_argument("--delta", type=float, required=True, help="target delta in 0..1")
        parser.set_defaults(strike=None)
    else:
        group = parser.add_mutually_exclusive_group(required=True)
        group.add_argument("--strike", type=float)
        group.add_argument("--delta", type=float, help="solve the strike from this delta")
    expiry = parser.add_mutually_exclusive_group(required=True)
    expiry.add_argument("--days", type=float, help="calendar days to expiry")
    expiry.add_argument("--time", type=float, help="years to expiry")
    parser.add_argument("--rate", type=float, default=0.0, help="cont. risk-free")
    parser.add_argument("--sigma", type=float, default=0.0)
    parser.add_argument("--dividend", type=float, default=0.0, help="cont. dividend yield")
    parser.add_argument("--kind", type=_kind, default=CALL, help="call|put")


def _model(args, **extra) -> OptionModel:
    return OptionModel(
        args.kind,
        underlying=args.underlying,
        strike=args.strike,
        delta=getattr(args, "delta", None),
        days_to_expiry=args.days,
        time_to_expiry=args.time,
        interest_rate=args.rate,
        volatility=args.sigma,
        dividend_yield=args.dividend,
        **extra,
    )


def cmd_price(args):
    print(f"{_model(args).price():.10f}")


def cmd_greeks(args):
    m = _model(args)
    snapshot = {"price": m.price(), **m.greeks(), "strike": m.strike}
    print(json.dumps(snapshot, indent=2))


def cmd_iv(args):
    print(f"{_model(args).implied_volatility(args.target_price):.10f}")


def cmd_strike(args):
    m = _model(args)
    print(f"{m.strike:.2f}")


def cmd_sigma(args):
    policy = ConvergencePolicy.RAISE if args.strict_convergence else ConvergencePolicy.BEST_EFFORT
    m = _model(args, sigma_policy=policy)
    print(f"{m.set_sigma_by_price(args.target_price):.10f}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="optmodel", description="Black-Scholes-Merton option model")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_price = sub.add_parser("price", help="option price")
    add_common(p_price, strike="either")
    p_price.set_defaults(func=cmd_price)

    p_greeks = sub.add_parser("greeks", help="price and Greeks as JSON")
    add_common(p_greeks, strike="either")
    p_greeks.set_defaults(func=cmd_greeks)

    p_iv = sub.add_parser("iv", help="implied volatility of a market price")
    add_common(p_iv)
    p_iv.add_argument("--target-price", dest="target_price", type=float, required=True)
    p_iv.set_defaults(func=cmd_iv)

    # strike solved from delta
    p_strike = sub.add_parser("strike", help="strike reproducing a delta")
    add_common(p_strike, strike="solved")
    p_strike.set_defaults(func=cmd_strike)

    p_sigma = sub.add_parser("sigma", help="volatility reproducing a price")
    add_common(p_sigma)
    p_sigma.add_argument("--target-price", dest="target_price", type=float, required=True)
    p_sigma.add_argument("--strict-convergence", action="store_true",
                         help="fail instead of keeping a best-effort volatility")
    p_sigma.set_defaults(func=cmd_sigma)

    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    try:
        args.func(args)
    except OptionModelError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

from .greeks import BlackScholesGreeksCalculator, OptionGreeks

__all__ = ["BlackScholesGreeksCalculator", "OptionGreeks"]

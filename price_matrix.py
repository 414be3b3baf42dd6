"""
Price Matrix - local split-cart optimisation from search results

The backend answers "which single store is cheapest". When the user is
willing to shop at more than one chain, the cart can be split: every line
is bought where it is cheapest. This module builds an item x chain price
table (pandas) from PricedProduct search results and computes that split.

Rules:
- Rows are cart identities, columns are chain names (sorted)
- A chain's price for an item is its cheapest branch price
- Missing prices are float('inf')
- Split basket: each line goes to its cheapest chain (ties: first chain by name)
- Best single chain: fewest missing items, then lowest total, then name
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import pandas as pd

from domain import CartSnapshot, PricedProduct


@dataclass
class ItemAssignment:
    """Assignment of a cart line to the chain it is cheapest at."""
    identity: str
    display_name: str
    chain: str
    unit_price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class BasketPlan:
    """Split-cart plan compared with the best single-chain option."""
    assignments: List[ItemAssignment]
    missing: List[str]
    split_total: float
    best_single_chain: Optional[str]
    best_single_total: float
    best_single_missing: int
    chain_totals: Dict[str, float] = field(default_factory=dict)

    @property
    def chains_visited(self) -> List[str]:
        chains = []
        for item in self.assignments:
            if item.chain not in chains:
                chains.append(item.chain)
        return chains

    @property
    def savings_vs_single(self) -> float:
        """How much splitting saves against the best single chain"""
        if self.best_single_chain is None:
            return 0.0
        return round(max(self.best_single_total - self.split_total, 0.0), 2)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "chains_visited": self.chains_visited,
            "basket": {
                "items": [
                    {
                        "identity": item.identity,
                        "name": item.display_name,
                        "chain": item.chain,
                        "unit_price": round(item.unit_price, 2),
                        "quantity": item.quantity,
                    }
                    for item in self.assignments
                ],
                "missing": self.missing,
                "total_cost": round(self.split_total, 2),
            },
            "best_single_chain": self.best_single_chain,
            "best_single_total": round(self.best_single_total, 2),
            "savings_vs_single": self.savings_vs_single,
        }


class PriceMatrix:
    """
    Two-sided price matrix: rows are cart identities, columns are chains.

    Values represent the price of an item at a chain.
    If an item is not found at a chain, the value is float('inf').
    """

    def __init__(self, identities: List[str], chains: List[str]):
        self.identities = list(identities)
        self.chains = sorted(set(chains))

        self.data = pd.DataFrame(
            data=float('inf'),
            index=self.identities,
            columns=self.chains,
            dtype=float
        )

    @classmethod
    def from_products(
        cls,
        snapshot: CartSnapshot,
        products: Mapping[str, PricedProduct],
    ) -> "PriceMatrix":
        """
        Build the matrix for a cart from search results keyed by identity.

        Lines without a matching product stay all-inf (missing everywhere).
        """
        chains = {
            sp.chain
            for line in snapshot
            if line.identity in products
            for sp in products[line.identity].store_prices
        }
        matrix = cls(snapshot.identities, list(chains))

        for line in snapshot:
            product = products.get(line.identity)
            if product is None:
                continue
            for sp in product.store_prices:
                if sp.price < matrix.get_price(line.identity, sp.chain):
                    matrix.set_price(line.identity, sp.chain, sp.price)

        return matrix

    def set_price(self, identity: str, chain: str, price: float) -> None:
        """Set the price of an item at a chain."""
        if identity not in self.data.index:
            raise ValueError(f"Item '{identity}' not in price matrix")
        if chain not in self.data.columns:
            raise ValueError(f"Chain '{chain}' not in price matrix")

        self.data.loc[identity, chain] = price

    def get_price(self, identity: str, chain: str) -> float:
        """Get the price of an item at a chain (returns inf if not available)."""
        return float(self.data.loc[identity, chain])

    def _available(self) -> pd.DataFrame:
        return self.data.mask(self.data == float('inf'))

    def chain_totals(self, snapshot: CartSnapshot) -> pd.DataFrame:
        """
        Per chain: total of the lines it carries and how many it misses.

        Returns:
            DataFrame indexed by chain with columns "total" and "missing"
        """
        quantities = pd.Series({line.identity: line.quantity for line in snapshot}, dtype=float)
        available = self._available()
        line_costs = available.mul(quantities, axis=0)

        return pd.DataFrame({
            "total": line_costs.sum(axis=0, skipna=True),
            "missing": available.isna().sum(axis=0).astype(int),
        })

    def optimize_basket(self, snapshot: CartSnapshot) -> BasketPlan:
        """
        Optimize the basket across chains.

        For each line, pick the cheapest chain that carries it. Lines no
        chain carries are reported as missing instead of priced.
        """
        available = self._available()
        assignments = []
        missing = []

        for line in snapshot:
            row = available.loc[line.identity].dropna()
            if row.empty:
                missing.append(line.identity)
                continue
            chain = row.idxmin()
            assignments.append(ItemAssignment(
                identity=line.identity,
                display_name=line.display_name,
                chain=chain,
                unit_price=float(row[chain]),
                quantity=line.quantity,
            ))

        split_total = sum(item.line_total for item in assignments)

        best_chain = None
        best_total = 0.0
        best_missing = len(snapshot)
        totals = {}
        if self.chains:
            summary = self.chain_totals(snapshot)
            totals = {chain: round(float(total), 2) for chain, total in summary["total"].items()}
            ranked = sorted(
                summary.itertuples(),
                key=lambda row: (row.missing, row.total, row.Index),
            )
            best = ranked[0]
            best_chain = best.Index
            best_total = float(best.total)
            best_missing = int(best.missing)

        return BasketPlan(
            assignments=assignments,
            missing=missing,
            split_total=round(split_total, 2),
            best_single_chain=best_chain,
            best_single_total=round(best_total, 2),
            best_single_missing=best_missing,
            chain_totals=totals,
        )

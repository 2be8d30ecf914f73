"""Product catalog record returned by the data source."""
from dataclasses import dataclass, asdict


@dataclass
class ProductRecord:
    id: int = 0
    name: str = ""
    unit_price: float = 0.0
    units_in_stock: int = 0

    @property
    def stock_value(self):
        return self.unit_price * self.units_in_stock

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_row(cls, row):
        """Build from a sqlite3.Row or plain dict."""
        return cls(
            id=int(row["id"]),
            name=row["name"] or "",
            unit_price=float(row["unit_price"] or 0.0),
            units_in_stock=int(row["units_in_stock"] or 0),
        )

"""Shop-curated flat-rate labor catalog."""

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from quotesourcing.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class LaborOperation:
    """One flat-rate repair operation."""

    id: str
    name: str
    category: str
    base_hours: Decimal
    difficulty: str = "Medium"
    description: str = ""
    vehicles: list[str] = field(default_factory=lambda: ["All"])
    custom_multiplier: Decimal = Decimal("1.0")
    updated_at: datetime = field(default_factory=utcnow)

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match against name, description or category."""
        term = query.strip().lower()
        if not term:
            return False
        haystacks = (self.name.lower(), self.description.lower(), self.category.lower())
        if any(term in h for h in haystacks):
            return True
        # Every word present, in any order ("front brake pads" vs "Brake Pads ... - Front")
        words = term.split()
        combined = " ".join(haystacks)
        return len(words) > 1 and all(w in combined for w in words)


# (id, name, category, base hours, difficulty, description, vehicles)
_SEED: tuple[tuple[str, str, str, str, str, str, tuple[str, ...]], ...] = (
    ("oil-change", "Oil Change - Synthetic", "Maintenance", "0.5", "Easy",
     "Oil and filter change with synthetic oil", ("All",)),
    ("oil-change-conventional", "Oil Change - Conventional", "Maintenance", "0.5", "Easy",
     "Oil and filter change with conventional oil", ("All",)),
    ("tire-rotation", "Tire Rotation", "Maintenance", "0.3", "Easy", "Rotate tires for even wear", ("All",)),
    ("brake-inspection", "Brake Inspection", "Inspection", "0.3", "Easy",
     "Complete brake system inspection", ("All",)),
    ("brake-pads-front", "Brake Pads Replacement - Front", "Brakes", "1.0", "Medium",
     "Replace front brake pads", ("All",)),
    ("brake-pads-rear", "Brake Pads Replacement - Rear", "Brakes", "1.0", "Medium",
     "Replace rear brake pads", ("All",)),
    ("brake-rotors-front", "Brake Rotors Replacement - Front", "Brakes", "1.5", "Medium",
     "Replace front brake rotors", ("All",)),
    ("brake-rotors-rear", "Brake Rotors Replacement - Rear", "Brakes", "1.5", "Medium",
     "Replace rear brake rotors", ("All",)),
    ("battery-replacement", "Battery Replacement", "Electrical", "0.3", "Easy", "Replace battery", ("All",)),
    ("alternator-replacement", "Alternator Replacement", "Electrical", "1.5", "Medium",
     "Replace alternator", ("All",)),
    ("starter-replacement", "Starter Replacement", "Electrical", "1.5", "Medium",
     "Replace starter motor", ("All",)),
    ("coolant-flush", "Coolant Flush", "Fluids", "1.0", "Medium", "Flush and refill cooling system", ("All",)),
    ("brake-fluid-flush", "Brake Fluid Flush", "Fluids", "0.8", "Medium", "Flush and refill brake fluid", ("All",)),
    ("transmission-fluid", "Transmission Fluid Service", "Fluids", "1.5", "Medium",
     "Drain and refill transmission fluid", ("All",)),
    ("power-steering-fluid", "Power Steering Fluid Service", "Fluids", "0.5", "Easy",
     "Flush and refill power steering fluid", ("All",)),
    ("spark-plugs-4cyl", "Spark Plug Replacement - 4 Cylinder", "Ignition", "1.0", "Medium",
     "Replace spark plugs (4 cylinder)", ("4 Cylinder",)),
    ("spark-plugs-6cyl", "Spark Plug Replacement - 6 Cylinder", "Ignition", "1.5", "Medium",
     "Replace spark plugs (6 cylinder)", ("6 Cylinder", "V6")),
    ("spark-plugs-8cyl", "Spark Plug Replacement - 8 Cylinder", "Ignition", "2.0", "Hard",
     "Replace spark plugs (8 cylinder)", ("8 Cylinder", "V8")),
    ("ignition-coils", "Ignition Coil Replacement", "Ignition", "0.5", "Easy",
     "Replace ignition coil (per coil)", ("All",)),
    ("shock-absorbers", "Shock Absorber Replacement (pair)", "Suspension", "2.0", "Hard",
     "Replace shock absorbers (pair)", ("All",)),
    ("struts", "Strut Replacement (pair)", "Suspension", "3.0", "Hard", "Replace struts (pair)", ("All",)),
    ("ball-joints", "Ball Joint Replacement (each)", "Suspension", "1.5", "Medium", "Replace ball joint", ("All",)),
    ("tie-rods", "Tie Rod Replacement (each)", "Steering", "1.0", "Medium", "Replace tie rod end", ("All",)),
    ("ac-recharge", "A/C Recharge", "HVAC", "0.5", "Easy", "Recharge A/C system", ("All",)),
    ("ac-compressor", "A/C Compressor Replacement", "HVAC", "3.0", "Hard", "Replace A/C compressor", ("All",)),
    ("air-filter", "Engine Air Filter Replacement", "Maintenance", "0.2", "Easy",
     "Replace engine air filter", ("All",)),
    ("cabin-filter", "Cabin Air Filter Replacement", "Maintenance", "0.3", "Easy",
     "Replace cabin air filter", ("All",)),
    ("fuel-filter", "Fuel Filter Replacement", "Maintenance", "0.5", "Medium", "Replace fuel filter", ("All",)),
    ("muffler-replacement", "Muffler Replacement", "Exhaust", "1.5", "Medium", "Replace muffler", ("All",)),
    ("o2-sensor", "O2 Sensor Replacement", "Exhaust", "0.5", "Easy", "Replace oxygen sensor", ("All",)),
    ("serpentine-belt", "Serpentine Belt Replacement", "Belts", "0.5", "Easy", "Replace serpentine belt", ("All",)),
    ("timing-belt", "Timing Belt Replacement", "Belts", "4.0", "Hard", "Replace timing belt", ("All",)),
    ("radiator-hoses", "Radiator Hose Replacement (each)", "Hoses", "0.5", "Easy", "Replace radiator hose", ("All",)),
)


@dataclass
class LaborEstimate:
    """Flat-rate hours for one or more operations.

    Operations missing from the catalog are listed in `missing`; pricing them
    needs a vendor call.
    """

    lines: list[tuple[LaborOperation, Decimal]] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    alternatives: list[LaborOperation] = field(default_factory=list)

    @property
    def total_hours(self) -> Decimal:
        return sum((hours for _, hours in self.lines), Decimal("0"))

    @property
    def complete(self) -> bool:
        return not self.missing


class LaborCatalog:

    """Pre-seeded catalog of common repair operations with flat-rate hours."""

    def __init__(self, seed: bool = True):
        self._operations: dict[str, LaborOperation] = {}
        if seed:
            for op_id, name, category, hours, difficulty, description, vehicles in _SEED:
                self.add_operation(
                    LaborOperation(
                        id=op_id,
                        name=name,
                        category=category,
                        base_hours=Decimal(hours),
                        difficulty=difficulty,
                        description=description,
                        vehicles=list(vehicles),
                    )
                )

    def add_operation(self, operation: LaborOperation) -> LaborOperation:
        """Add or replace an operation.

        Raises:
            ValueError: If id or name is missing or hours are not positive.
        """
        if not operation.id or not operation.name or operation.base_hours <= 0:
            raise ValueError("Labor operation must have id, name, and positive base_hours")
        self._operations[operation.id] = operation
        return operation

    def get(self, operation_id: str) -> LaborOperation | None:
        return self._operations.get(operation_id)

    def all(self) -> list[LaborOperation]:
        return list(self._operations.values())

    def search(self, query: str) -> list[LaborOperation]:
        return [op for op in self._operations.values() if op.matches(query)]

    def by_category(self, category: str) -> list[LaborOperation]:
        return [op for op in self._operations.values() if op.category == category]

    def categories(self) -> list[str]:
        return sorted({op.category for op in self._operations.values()})

    def update_operation(self, operation_id: str, **updates: object) -> LaborOperation:
        """Apply shop customizations. The id cannot change.

        Raises:
            KeyError: If the operation does not exist.
        """
        operation = self._operations.get(operation_id)
        if operation is None:
            raise KeyError(f"Labor operation not found: {operation_id}")
        updates.pop("id", None)
        updated = replace(operation, **updates, updated_at=utcnow())  # type: ignore[arg-type]
        self._operations[operation_id] = updated
        return updated

    def remove_operation(self, operation_id: str) -> bool:
        return self._operations.pop(operation_id, None) is not None

    def labor_hours(self, operation_id: str, shop_multiplier: Decimal = Decimal("1.0")) -> Decimal:
        """Flat-rate hours including the operation's and the shop's multipliers.

        Raises:
            KeyError: If the operation does not exist.
        """
        operation = self._operations.get(operation_id)
        if operation is None:
            raise KeyError(f"Labor operation not found: {operation_id}")
        return operation.base_hours * operation.custom_multiplier * shop_multiplier

    def estimate(self, operation_ids: list[str], shop_multiplier: Decimal = Decimal("1.0")) -> LaborEstimate:
        """Sum flat-rate hours across several operations.

        Args:
            operation_ids: Catalog ids, in the order they should be listed.
            shop_multiplier: Shop-wide labor multiplier.

        Returns:
            LaborEstimate; unknown ids go to `missing` instead of raising.
        """
        estimate = LaborEstimate()
        for operation_id in operation_ids:
            operation = self._operations.get(operation_id)
            if operation is None:
                estimate.missing.append(operation_id)
                continue
            estimate.lines.append((operation, self.labor_hours(operation_id, shop_multiplier)))
        if estimate.missing:
            logger.warning(f"Not in labor catalog, needs a vendor call: {', '.join(estimate.missing)}")
        return estimate

    def quick_estimate(self, description: str, shop_multiplier: Decimal = Decimal("1.0")) -> LaborEstimate | None:
        """Estimate the best catalog match for a free-text repair description.

        The first match is priced; the next two are offered as alternatives.
        Returns None when nothing matches.
        """
        matches = self.search(description)
        if not matches:
            return None
        estimate = self.estimate([matches[0].id], shop_multiplier)
        estimate.alternatives = matches[1:3]
        return estimate


    def export_json(self) -> str:
        records = []
        for op in self._operations.values():
            record = asdict(op)
            record["base_hours"] = str(op.base_hours)
            record["custom_multiplier"] = str(op.custom_multiplier)
            record["updated_at"] = op.updated_at.isoformat()
            records.append(record)
        return json.dumps(records, indent=2)

    def import_json(self, data: str) -> int:
        """Merge operations from an export. Returns the number imported.

        Raises:
            ValueError: If the payload is not a valid export.
        """
        try:
            records = json.loads(data)
            operations = [
                LaborOperation(
                    id=r["id"],
                    name=r["name"],
                    category=r.get("category", "General"),
                    base_hours=Decimal(str(r["base_hours"])),
                    difficulty=r.get("difficulty", "Medium"),
                    description=r.get("description", ""),
                    vehicles=list(r.get("vehicles", ["All"])),
                    custom_multiplier=Decimal(str(r.get("custom_multiplier", "1.0"))),
                )
                for r in records
            ]
        except (json.JSONDecodeError, KeyError, TypeError, ArithmeticError) as e:
            raise ValueError(f"Invalid labor catalog export: {e}") from e

        for op in operations:
            self.add_operation(op)
        logger.info(f"Imported {len(operations)} labor operations")
        return len(operations)

    def __len__(self) -> int:
        return len(self._operations)

"""
Keranjang kasir.

Keranjang disimpan sebagai dict di tabel cart_drafts (satu baris per user),
lalu dibangun ulang menjadi objek Cart di setiap request. Semua mutasi yang
ditolak tidak mengubah isi keranjang.
"""
import uuid
from dataclasses import dataclass, asdict
from typing import List, Optional


class StockInsufficient(Exception):
    """Jumlah yang diminta melebihi stok yang tercatat saat produk masuk keranjang."""

    def __init__(self, product_name: str, available_stock: int):
        self.product_name = product_name
        self.available_stock = available_stock
        super().__init__("Stok tidak mencukupi")


def resolve_unit_price(price: float, discount_type: Optional[str] = None, discount_value: Optional[float] = None) -> float:
    """Harga satuan setelah diskon.

    Tidak ada batas bawah nol: diskon fixed yang lebih besar dari harga
    menghasilkan harga negatif.
    """
    if not discount_type:
        return price
    if discount_type == "percent":
        return price - (price * discount_value) / 100
    return price - discount_value


def unit_price_for(product) -> float:
    discount = product.discount
    if discount is None:
        return resolve_unit_price(product.price)
    return resolve_unit_price(product.price, discount.type, discount.value)


@dataclass
class CartLine:
    product_id: str
    product_name: str
    quantity: int
    unit_price: float
    subtotal: float
    available_stock: int


class Cart:
    def __init__(self, lines: Optional[List[CartLine]] = None, payment: float = 0, checkout_key: Optional[str] = None):
        self.lines = lines or []
        self.payment = payment
        self.checkout_key = checkout_key or str(uuid.uuid4())

    def find(self, product_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def add(self, product) -> CartLine:
        """Tambah satu unit produk. `product` adalah model Product dengan relasi discount."""
        line = self.find(product.id)
        if line:
            if line.quantity + 1 > line.available_stock:
                raise StockInsufficient(line.product_name, line.available_stock)
            line.quantity += 1
            line.subtotal = line.quantity * line.unit_price
            return line

        if product.stock < 1:
            raise StockInsufficient(product.name, product.stock)
        unit_price = unit_price_for(product)
        line = CartLine(
            product_id=product.id,
            product_name=product.name,
            quantity=1,
            unit_price=unit_price,
            subtotal=unit_price,
            available_stock=product.stock,
        )
        self.lines.append(line)
        return line

    def adjust(self, product_id: str, delta: int) -> Optional[CartLine]:
        line = self.find(product_id)
        if line is None:
            return None
        new_quantity = line.quantity + delta
        # Jumlah nol/negatif diabaikan; baris hanya hilang lewat remove()
        if new_quantity <= 0:
            return line
        if new_quantity > line.available_stock:
            raise StockInsufficient(line.product_name, line.available_stock)
        line.quantity = new_quantity
        line.subtotal = new_quantity * line.unit_price
        return line

    def remove(self, product_id: str):
        self.lines = [line for line in self.lines if line.product_id != product_id]

    def clear(self):
        self.lines = []
        self.payment = 0
        self.checkout_key = str(uuid.uuid4())

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total(self) -> float:
        return sum(line.subtotal for line in self.lines)

    @property
    def change_amount(self) -> float:
        return self.payment - self.total

    @property
    def change(self) -> float:
        """Kembalian untuk tampilan, tidak pernah negatif."""
        return max(0, self.change_amount)

    def to_dict(self) -> dict:
        return {
            "lines": [asdict(line) for line in self.lines],
            "payment": self.payment,
            "checkout_key": self.checkout_key,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Cart":
        if not data:
            return cls()
        lines = [CartLine(**line) for line in data.get("lines", [])]
        return cls(lines=lines, payment=data.get("payment", 0), checkout_key=data.get("checkout_key"))

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from fastapi import Request
from fastapi.responses import RedirectResponse
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from models import AuthIdentity, User

logger = logging.getLogger(__name__)

pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLES = ("owner", "kasir")

CAPABILITIES = {
    "owner": frozenset({
        "dashboard", "products", "discounts", "transactions", "checkout",
        "categories", "reports", "users",
    }),
    "kasir": frozenset({
        "dashboard", "products", "discounts", "transactions", "checkout",
    }),
}

# (label, href, capability)
SIDEBAR_MENU = {
    "owner": [
        ("Dashboard", "/dashboard", "dashboard"),
        ("Produk", "/dashboard/products", "products"),
        ("Kategori", "/dashboard/categories", "categories"),
        ("Transaksi", "/dashboard/transactions", "transactions"),
        ("Diskon", "/dashboard/discounts", "discounts"),
        ("Laporan", "/dashboard/reports", "reports"),
        ("User", "/dashboard/users", "users"),
    ],
    "kasir": [
        ("Dashboard", "/dashboard", "dashboard"),
        ("Transaksi", "/dashboard/transactions/create", "checkout"),
        ("Diskon", "/dashboard/discounts", "discounts"),
        ("Riwayat Transaksi", "/dashboard/transactions", "transactions"),
    ],
}


@dataclass(frozen=True)
class Principal:
    user_id: str
    name: str
    role: str
    capabilities: FrozenSet[str]

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @property
    def menu(self):
        return [(label, href) for label, href, cap in SIDEBAR_MENU.get(self.role, []) if self.can(cap)]


def hash_password(p: str) -> str:
    return pwd.hash(p)

def verify_password(p: str, hashed: str) -> bool:
    return pwd.verify(p, hashed)


def sign_in(db: Session, email: str, password: str) -> Optional[User]:
    identity = db.query(AuthIdentity).filter(AuthIdentity.email == email.lower()).first()
    if not identity or not verify_password(password, identity.password_hash):
        logger.warning(f"Login gagal untuk {email}")
        return None
    profile = db.query(User).filter(User.id == identity.id).first()
    if not profile or not profile.is_active or profile.role not in CAPABILITIES:
        logger.warning(f"Login ditolak untuk {email}: profil tidak ada, nonaktif, atau role tidak dikenal")
        return None
    logger.info(f"Login berhasil: {email} ({profile.role})")
    return profile


def resolve_session(request: Request, db: Session) -> Optional[Principal]:
    """Baca user dari cookie session, lalu role dan nama terbaru dari database."""
    user_id = request.session.get("user_id")
    if not user_id:
        return None
    profile = db.query(User).filter(User.id == user_id).first()
    if not profile or not profile.is_active or profile.role not in CAPABILITIES:
        request.session.clear()
        return None
    return Principal(
        user_id=profile.id,
        name=profile.name,
        role=profile.role,
        capabilities=CAPABILITIES[profile.role],
    )


def require_capability(request: Request, db: Session, capability: str):
    """Kembalikan (principal, None) atau (None, RedirectResponse)."""
    principal = resolve_session(request, db)
    if principal is None:
        return None, RedirectResponse("/login", status_code=302)
    if not principal.can(capability):
        return None, RedirectResponse("/dashboard", status_code=302)
    return principal, None


# -------- Identity admin (hanya dipanggil dari server) ----------
def create_identity(db: Session, email: str, password: str) -> AuthIdentity:
    identity = AuthIdentity(email=email.lower(), password_hash=hash_password(password))
    db.add(identity)
    db.flush()
    return identity

def list_identities(db: Session) -> List[AuthIdentity]:
    return db.query(AuthIdentity).all()

def delete_identity(db: Session, identity_id: str) -> bool:
    identity = db.query(AuthIdentity).filter(AuthIdentity.id == identity_id).first()
    if not identity:
        return False
    db.delete(identity)
    db.commit()
    return True

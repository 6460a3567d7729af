from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator


class CategoryIn(BaseModel):
    name: str = Field(min_length=3)


class DiscountIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    name: str = Field(min_length=1)
    type: Literal["percent", "fixed"]
    value: float = Field(ge=1)
    is_active: bool = True


class ProductIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    name: str = Field(min_length=1)
    price: float = Field(ge=1)
    stock: int = Field(ge=0)
    category_id: UUID
    discount_id: Optional[UUID] = None
    is_active: bool = True

    @field_validator("discount_id", mode="before")
    @classmethod
    def empty_discount(cls, v):
        # Pilihan "tanpa diskon" dikirim form sebagai string kosong
        return v or None


class UserCreateIn(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["owner", "kasir"]
    is_active: bool = True


class UserUpdateIn(BaseModel):
    name: str = Field(min_length=1)
    role: Literal["owner", "kasir"]
    is_active: bool = True


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


# Pesan yang tampil di bawah field form
MESSAGES = {
    ("category", "name"): "Nama kategori minimal 3 karakter",
    ("discount", "name"): "Nama diskon harus diisi",
    ("discount", "type"): "Tipe diskon tidak valid",
    ("discount", "value"): "Nilai diskon harus lebih dari 0",
    ("product", "name"): "Nama produk harus diisi",
    ("product", "price"): "Harga harus lebih dari 0",
    ("product", "stock"): "Stok tidak boleh negatif",
    ("product", "category_id"): "Kategori harus dipilih",
    ("product", "discount_id"): "Diskon tidak valid",
    ("user", "name"): "Nama harus diisi",
    ("user", "email"): "Email tidak valid",
    ("user", "password"): "Password minimal 6 karakter",
    ("user", "role"): "Role tidak valid",
    ("login", "email"): "Email tidak valid",
    ("login", "password"): "Password harus diisi",
}


def field_errors(exc: ValidationError, form: str) -> dict:
    errors = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "form"
        if field not in errors:
            errors[field] = MESSAGES.get((form, field), err["msg"])
    return errors

import pytest

from customer_mapper import CustomerMapper
from models import NormalizedCustomer, Rejected


@pytest.fixture
def mapper(sanitizer):
    return CustomerMapper(sanitizer)


@pytest.fixture
def cliente():
    return {
        "Id": 77,
        "Nombre": "Ana",
        "Apellidos": "García López",
        "Email": " Ana@Example.com ",
        "Telefono1": "+34 600-111-222",
        "Direccion": "C/ Mayor 1",
        "Ciudad": "Madrid",
        "Provincia": "Madrid",
        "CodigoPostal": "28001",
        "Pais": "ES",
    }


def test_maps_customer(mapper, cliente):
    customer = mapper.to_normalized(cliente)
    assert isinstance(customer, NormalizedCustomer)
    assert customer.id == 77
    assert customer.email == "ana@example.com"
    assert customer.phone == "+34 600-111-222"
    assert customer.billing.city == "Madrid"
    assert customer.billing.phone == "+34 600-111-222"
    assert customer.external_id == "77"


def test_shipping_falls_back_to_billing(mapper, cliente):
    customer = mapper.to_normalized(cliente)
    assert customer.shipping.address_1 == "C/ Mayor 1"
    assert customer.shipping.email == ""


def test_separate_shipping_address(mapper, cliente):
    cliente.update({"EnvioNombre": "Luis", "EnvioDireccion": "Av. Sol 3", "EnvioCiudad": "Toledo"})
    customer = mapper.to_normalized(cliente)
    assert customer.shipping.first_name == "Luis"
    assert customer.shipping.city == "Toledo"
    assert customer.billing.city == "Madrid"


@pytest.mark.parametrize("changes, reason", [
    ({"Id": 0}, "invalid_id"),
    ({"Id": "x"}, "invalid_id"),
    ({"Email": "ana.example.com"}, "invalid_email"),
    ({"Email": None}, "invalid_email"),
])
def test_rejections(mapper, cliente, changes, reason):
    cliente.update(changes)
    result = mapper.to_normalized(cliente)
    assert isinstance(result, Rejected)
    assert result.reason == reason


def test_to_external(mapper, cliente):
    external = mapper.to_external(mapper.to_normalized(cliente))
    assert external["ID"] == 77
    assert external["Email"] == "ana@example.com"
    assert external["Apellidos"] == "García López"
    assert external["EnvioDireccion"] == "C/ Mayor 1"
    assert "EnvioEmail" not in external

    assert mapper.to_external({"id": 3, "email": "nope"}) == {}
    assert mapper.to_external("not a record") == {}

# ============================================================================
#  product_mapper.py - Verial <-> WooCommerce Product Mapping
#  Version: 1.0.0
# ============================================================================
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from pydantic import ValidationError
from category_resolver import CategoryResolver
from models import NormalizedProduct, Rejected
from sanitizer import FieldSanitizer, to_number

logger = logging.getLogger(__name__)

# Barcode first, then the ERP's internal numeric id
PRIORITY_SKU_FIELDS = ("ReferenciaBarras", "Id")
DEFAULT_SKU_FIELDS = ("ReferenciaBarras", "Id", "CodigoArticulo")

NAME_FIELDS = ("Nombre", "Descripcion")
DESCRIPTION_FIELDS = ("DescripcionLarga", "Descripcion")
PRICE_FIELDS = ("PrecioVenta", "Precio", "PVP")
SALE_PRICE_FIELDS = ("PVPOferta", "PrecioOferta")
STOCK_FIELDS = ("Stock", "StockDisponible")
EXTERNAL_ID_FIELDS = ("Id", "ID_Articulo")

# (id field, name fields) for the primary category and the four web category slots
CATEGORY_SLOTS = (
    ("ID_Categoria", ("NombreCategoriaPrincipal", "NombreCategoria")),
    ("ID_CategoriaWeb1", ("NombreCategoriaWeb1",)),
    ("ID_CategoriaWeb2", ("NombreCategoriaWeb2",)),
    ("ID_CategoriaWeb3", ("NombreCategoriaWeb3",)),
    ("ID_CategoriaWeb4", ("NombreCategoriaWeb4",)),
)

ATTRIBUTE_LIST_FIELDS = ("Atributos", "Attributes")
ATTR_NAME_KEYS = ("nombre", "name", "Nombre")
ATTR_VALUE_KEYS = ("valor", "value", "Valor")
ATTR_VALUES_KEYS = ("valores", "values", "Valores")

VARIATIONS_FIELDS = ("Variaciones", "Variations")
PRODUCT_TYPE_FIELDS = ("TipoProducto", "type")

# Variations without attributes get this one so the store accepts them
SYNTHETIC_ATTRIBUTE = "Variante"

DEFAULT_CATEGORY_ID = 15


def _first_present(record: Dict, fields: Sequence[str]) -> Any:
    for field in fields:
        value = record.get(field)
        if value not in (None, "") and not isinstance(value, (dict, list)):
            return value
    return None


def _first_numeric(record: Dict, fields: Sequence[str]) -> Optional[float]:
    for field in fields:
        number = to_number(record.get(field))
        if number is not None:
            return number
    return None


def _first_list(record: Dict, fields: Sequence[str]) -> List:
    for field in fields:
        value = record.get(field)
        if isinstance(value, list):
            return value
    return []


class ProductMapper:
    def __init__(self, sanitizer: FieldSanitizer, categories: CategoryResolver,
                 sku_fields: Optional[Sequence[str]] = None, default_category_id: Optional[int] = DEFAULT_CATEGORY_ID):
        self.sanitizer = sanitizer
        self.categories = categories
        self.sku_fields = list(sku_fields or DEFAULT_SKU_FIELDS)
        self.default_category_id = default_category_id

    # --- SKU -----------------------------------------------------------------

    def detect_sku(self, record: Dict) -> Tuple[str, Optional[str]]:
        """Returns (sku, source field). The first non-empty scalar wins."""
        for field in list(PRIORITY_SKU_FIELDS) + self.sku_fields:
            value = record.get(field)
            if value in (None, "", 0, "0") or isinstance(value, (dict, list, bool)):
                continue
            sku = self.sanitizer.sanitize(value, "sku")
            if self.sanitizer.validate(sku, "sku"):
                return sku, field
        return "", None

    # --- Verial -> WooCommerce -------------------------------------------------

    def to_normalized(self, record: Any, overrides: Optional[Dict] = None,
                      batch_cache: Optional[Dict] = None) -> Union[NormalizedProduct, Rejected]:
        if not isinstance(record, dict) or not record:
            return Rejected(reason="invalid_record", detail="Product record is not a non-empty map")

        raw_id = _first_present(record, EXTERNAL_ID_FIELDS)
        external_id = str(raw_id) if raw_id is not None else None

        sku, sku_source = self.detect_sku(record)
        if not sku:
            logger.warning(f"Rejecting product without SKU (ERP id: {external_id})")
            return Rejected(reason="missing_sku", external_id=external_id,
                            detail=f"None of {', '.join(list(PRIORITY_SKU_FIELDS) + self.sku_fields)} is set")

        if batch_cache is None:
            batch_cache = {}

        price = self.sanitizer.sanitize(_first_numeric(record, PRICE_FIELDS), "price")
        sale_price = _first_numeric(record, SALE_PRICE_FIELDS)
        stock_raw = _first_numeric(record, STOCK_FIELDS)

        data = {
            "sku": sku,
            "name": self.sanitizer.sanitize(_first_present(record, NAME_FIELDS), "text"),
            "description": self.sanitizer.sanitize(_first_present(record, DESCRIPTION_FIELDS), "html"),
            "type": "simple",
            "price": price,
            "sale_price": sale_price if sale_price and 0 < sale_price < price else None,
            "stock_quantity": int(stock_raw) if stock_raw is not None else None,
            "manage_stock": stock_raw is not None,
            "dimensions": self._map_dimensions(record),
            "category_ids": self._map_categories(record, batch_cache),
            "attributes": self._map_attributes(_first_list(record, ATTRIBUTE_LIST_FIELDS), sku),
            "external_id": external_id,
            "meta_data": self._map_meta(record, external_id, sku_source),
        }

        if self._is_variable(record):
            variations = self._map_variations(_first_list(record, VARIATIONS_FIELDS), sku, price)
            if variations:
                data["type"] = "variable"
                data["variations"] = variations
                data["attributes"] = self._variation_axes(data["attributes"], variations)
            else:
                logger.info(f"Product {sku} has no valid variations left, mapping it as simple")

        bundle = self._map_bundle(record.get("Bundle"))
        if bundle:
            data["bundle"] = bundle

        if overrides:
            data.update(overrides)

        try:
            return NormalizedProduct.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Product {sku} failed validation: {e}")
            return Rejected(reason="validation_error", detail=str(e), external_id=external_id)

    def _map_dimensions(self, record: Dict) -> Dict:
        dims = {}
        for target, field in (("weight", "Peso"), ("length", "Grueso"), ("width", "Ancho"), ("height", "Alto")):
            number = to_number(record.get(field))
            dims[target] = number if number and number > 0 else None
        return dims

    def _map_categories(self, record: Dict, batch_cache: Dict) -> List[int]:
        slots = []
        for id_field, name_fields in CATEGORY_SLOTS:
            raw = record.get(id_field)
            if raw in (None, "", 0, "0") or isinstance(raw, (dict, list, bool)):
                continue
            external_id = self.sanitizer.sanitize(raw, "int")
            if external_id <= 0:
                continue
            name = self.sanitizer.sanitize(_first_present(record, name_fields), "text")
            slots.append((external_id, name))

        category_ids = self.categories.resolve_many(slots, batch_cache)

        if not category_ids:
            generic_name = self.sanitizer.sanitize(record.get("NombreCategoria"), "text")
            if generic_name:
                term_id = self.categories.resolve(None, generic_name, batch_cache)
                if term_id is not None:
                    category_ids.append(term_id)

        if not category_ids and self.default_category_id is not None:
            category_ids.append(self.default_category_id)
        return category_ids

    def _parse_attribute(self, entry: Any, owner: str) -> Optional[Dict]:
        """Returns {name, values} or None for a malformed entry."""
        if not isinstance(entry, dict):
            logger.debug(f"Skipping non-map attribute on {owner}: {entry!r}")
            return None
        name = self.sanitizer.sanitize(_first_present(entry, ATTR_NAME_KEYS), "text")
        if not name:
            logger.debug(f"Skipping attribute without name on {owner}: {entry!r}")
            return None
        values = _first_list(entry, ATTR_VALUES_KEYS)
        if not values:
            single = _first_present(entry, ATTR_VALUE_KEYS)
            values = [single] if single is not None else []
        clean = []
        for value in values:
            text = self.sanitizer.sanitize(value, "text")
            if text and text not in clean:
                clean.append(text)
        return {"name": name, "values": clean}

    def _map_attributes(self, entries: List, owner: str) -> List[Dict]:
        attributes = []
        for entry in entries:
            parsed = self._parse_attribute(entry, owner)
            if parsed is None:
                continue
            attributes.append({"name": parsed["name"], "values": parsed["values"],
                               "is_variation": False, "visible": True})
        return attributes

    def _is_variable(self, record: Dict) -> bool:
        flag = _first_present(record, PRODUCT_TYPE_FIELDS)
        if isinstance(flag, str) and flag.strip().lower() == "variable":
            return True
        return bool(_first_list(record, VARIATIONS_FIELDS))

    def _map_variations(self, entries: List, parent_sku: str, parent_price: float) -> List[Dict]:
        variations = []
        seen_skus = {parent_sku}
        for index, entry in enumerate(entries, start=1):
            if not isinstance(entry, dict):
                logger.debug(f"Skipping non-map variation #{index} of {parent_sku}")
                continue

            sku, _ = self.detect_sku(entry)
            if not sku:
                sku = self.sanitizer.sanitize(f"{parent_sku}-var-{index}", "sku")
            if sku in seen_skus:
                logger.debug(f"Skipping variation #{index} of {parent_sku}: duplicate SKU {sku}")
                continue
            seen_skus.add(sku)

            attributes = []
            for attr_entry in _first_list(entry, ATTRIBUTE_LIST_FIELDS):
                parsed = self._parse_attribute(attr_entry, sku)
                if parsed is None or not parsed["values"]:
                    continue
                attributes.append({"name": parsed["name"], "option": parsed["values"][0]})
            if not attributes:
                attributes.append({"name": SYNTHETIC_ATTRIBUTE, "option": sku})

            price = _first_numeric(entry, PRICE_FIELDS)
            sale_price = _first_numeric(entry, SALE_PRICE_FIELDS)
            stock = _first_numeric(entry, STOCK_FIELDS)
            raw_id = _first_present(entry, EXTERNAL_ID_FIELDS)
            variation_price = self.sanitizer.sanitize(price, "price") if price is not None else parent_price
            variations.append({
                "sku": sku,
                "price": variation_price,
                "sale_price": sale_price if sale_price and 0 < sale_price < variation_price else None,
                "stock_quantity": int(stock) if stock is not None else None,
                "attributes": attributes,
                "external_id": str(raw_id) if raw_id is not None else None,
            })
        return variations

    @staticmethod
    def _variation_axes(attributes: List[Dict], variations: List[Dict]) -> List[Dict]:
        """Marks parent attributes that vary and adds axes only the variations declare."""
        options_by_axis: Dict[str, List[str]] = {}
        for variation in variations:
            for attr in variation["attributes"]:
                options = options_by_axis.setdefault(attr["name"], [])
                if attr["option"] not in options:
                    options.append(attr["option"])

        rebuilt = []
        for attr in attributes:
            attr = dict(attr)
            if attr["name"] in options_by_axis:
                attr["is_variation"] = True
                for option in options_by_axis.pop(attr["name"]):
                    if option not in attr["values"]:
                        attr["values"] = attr["values"] + [option]
            elif len(attr["values"]) > 1:
                attr["is_variation"] = True
            rebuilt.append(attr)
        for name, options in options_by_axis.items():
            rebuilt.append({"name": name, "values": options, "is_variation": True, "visible": True})
        return rebuilt

    def _map_bundle(self, raw: Any) -> Optional[Dict]:
        if not isinstance(raw, dict):
            return None
        components = []
        for entry in _first_list(raw, ("productos", "components", "Productos")):
            if not isinstance(entry, dict):
                continue
            sku_raw = _first_present(entry, ("sku", "SKU", "ReferenciaBarras"))
            sku = self.sanitizer.sanitize(sku_raw, "sku") if sku_raw is not None else ""
            if not sku:
                continue
            quantity = self.sanitizer.sanitize(_first_present(entry, ("cantidad", "quantity", "Cantidad")), "int")
            components.append({"sku": sku, "quantity": max(1, quantity)})
        if not components:
            return None
        return {"name": self.sanitizer.sanitize(_first_present(raw, ("nombre", "name", "Nombre")), "text"),
                "components": components}

    def _map_meta(self, record: Dict, external_id: Optional[str], sku_source: Optional[str]) -> Dict:
        meta = {"_verial_id": external_id, "_verial_sku_source": sku_source}
        for key, field in (("_verial_category_id", "ID_Categoria"), ("_verial_manufacturer_id", "ID_Fabricante"),
                           ("_verial_vat", "PorcentajeIVA"), ("_verial_type", "Tipo")):
            value = record.get(field)
            if value not in (None, "") and not isinstance(value, (dict, list)):
                meta[key] = value
        if record.get("CampoPersonalizado") not in (None, ""):
            meta["_verial_custom_field"] = self.sanitizer.sanitize(record["CampoPersonalizado"], "text")
        return meta

    # --- WooCommerce -> Verial -------------------------------------------------

    def to_external(self, platform_record: Any) -> Dict:
        """Maps a store product back to the ERP article shape. Lossy by nature."""
        if isinstance(platform_record, NormalizedProduct):
            platform_record = platform_record.model_dump(mode="json")
        if not isinstance(platform_record, dict):
            return {}
        sku = self.sanitizer.sanitize(platform_record.get("sku"), "sku")
        if not sku:
            logger.error(f"Cannot map store product {platform_record.get('id')} to the ERP: no SKU")
            return {}

        name = self.sanitizer.sanitize(platform_record.get("name"), "text")
        price = platform_record.get("price")
        if price in (None, ""):
            price = platform_record.get("regular_price")
        external = {
            "ReferenciaBarras": sku,
            "Nombre": name,
            "Descripcion": self.sanitizer.sanitize(platform_record.get("description"), "text") or name,
            "PrecioVenta": self.sanitizer.sanitize(price, "price"),
            "Stock": None,
        }
        if platform_record.get("manage_stock") and to_number(platform_record.get("stock_quantity")) is not None:
            external["Stock"] = to_number(platform_record.get("stock_quantity"))

        dims = platform_record.get("dimensions") or {}
        weight = to_number(platform_record.get("weight")) or to_number(dims.get("weight"))
        if weight:
            external["Peso"] = weight
        for field, key in (("Grueso", "length"), ("Ancho", "width"), ("Alto", "height")):
            number = to_number(dims.get(key))
            if number:
                external[field] = number

        verial_id = self._meta_value(platform_record.get("meta_data"), "_verial_id") or platform_record.get("external_id")
        if verial_id not in (None, ""):
            external["Id"] = self.sanitizer.sanitize(verial_id, "int")
        return external

    @staticmethod
    def _meta_value(meta: Any, key: str) -> Any:
        if isinstance(meta, dict):
            return meta.get(key)
        if isinstance(meta, list):
            for entry in meta:
                if isinstance(entry, dict) and entry.get("key") == key:
                    return entry.get("value")
        return None

    # --- Filters ---------------------------------------------------------------

    @staticmethod
    def matches_filters(record: Dict, filters: Optional[Dict]) -> bool:
        """Applies the optional sync filters to a raw ERP product."""
        if not filters:
            return True
        category = filters.get("category") or filters.get("categoria")
        if category:
            wanted = int(to_number(category) or 0)
            if not any(int(to_number(record.get(field)) or 0) == wanted for field, _ in CATEGORY_SLOTS):
                return False
        manufacturer = filters.get("manufacturer") or filters.get("fabricante")
        if manufacturer:
            if int(to_number(record.get("ID_Fabricante")) or 0) != int(to_number(manufacturer) or 0):
                return False
        price = _first_numeric(record, ("PVP",) + PRICE_FIELDS)
        price_min = to_number(filters.get("price_min", filters.get("precio_min")))
        if price_min is not None and (price is None or price < price_min):
            return False
        price_max = to_number(filters.get("price_max", filters.get("precio_max")))
        if price_max is not None and (price is None or price > price_max):
            return False
        return True
# ============================================================================
# End of product_mapper.py - Version: 1.0.0
# ============================================================================

ALL_CATEGORY = "All"

# товары из локального JSON, у них нет updated_at
LOCAL_CATEGORY = "LocalStock"

CATEGORIES_TABLE = "categories"
PRODUCTS_TABLE = "products"

# PostgREST select с подтянутой категорией
PRODUCT_WITH_CATEGORY = "*,categories(id,name)"
PRODUCT_WITH_CATEGORY_NAME = "*,categories(name)"

# "<action>失敗: <message>"
ACTION_LOAD_CATEGORIES = "載入類別"
ACTION_LOAD_PRODUCTS = "載入商品"
ACTION_LOAD_CATEGORY_DATA = "載入類別資料"
ACTION_LOAD_PRODUCT_DATA = "載入商品資料"
ACTION_CREATE_CATEGORY = "新增類別"
ACTION_CREATE_PRODUCT = "新增商品"
ACTION_UPDATE_PRODUCT = "更新商品"
ACTION_DELETE_PRODUCT = "刪除商品"
ACTION_TOGGLE_VISIBILITY = "切換顯示狀態"
ACTION_TOGGLE_PINNED = "切換置頂狀態"

CATALOG_FALLBACK_ERROR = "載入商品資料時發生錯誤"

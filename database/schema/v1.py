"""Schema v1 - Initial marketplace schema.

This version includes tables for:
- Users mirrored from the identity provider
- Products with a weighted full-text search vector
- Cart entries and favorites (one row per user/product pair)
- Offers with a single pending offer per buyer and product
- Reviews with a single review per user and product
"""

SEARCH_VECTOR = '''TSVECTOR GENERATED ALWAYS AS (
    setweight(to_tsvector('english'::regconfig, coalesce(title, '')), 'A') ||
    setweight(to_tsvector('english'::regconfig, coalesce(brand, '')), 'B') ||
    setweight(to_tsvector('english'::regconfig, coalesce(tags, '')), 'C') ||
    setweight(to_tsvector('english'::regconfig,
        coalesce(description, '') || ' ' || coalesce(color, '') || ' ' || coalesce(material, '')
    ), 'D')
) STORED'''

UPDATED_AT_FUNCTION = '''
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
'''

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'firebase_uid', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'user'",
                 'check': "role IN ('user', 'admin')"},
                {'name': 'profile_picture', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'phone', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'street', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'city', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'state', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'zip_code', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'country', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_users_firebase_uid', 'columns': ['firebase_uid'], 'unique': True},
                {'name': 'idx_users_email', 'columns': ['email'], 'unique': True}
            ]
        },
        {
            'name': 'products',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'NUMERIC(12, 2)', 'nullable': False, 'check': 'price >= 0'},
                {'name': 'original_price', 'type': 'NUMERIC(12, 2)', 'check': 'original_price >= 0'},
                {'name': 'category', 'type': 'TEXT', 'nullable': False},
                {'name': 'subcategory', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'brand', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'condition', 'type': 'TEXT', 'nullable': False},
                {'name': 'size', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'color', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'pattern', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'style', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'gender', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'material', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'images', 'type': 'TEXT[]', 'nullable': False, 'default': "'{}'"},
                {'name': 'location', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'is_available', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'is_featured', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'views', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'tags', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'shipping_weight', 'type': 'NUMERIC(10, 3)'},
                {'name': 'shipping_free', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'shipping_cost', 'type': 'NUMERIC(12, 2)', 'nullable': False, 'default': '0'},
                {'name': 'search_vector', 'type': SEARCH_VECTOR},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_products_seller', 'columns': ['seller_id']},
                {'name': 'idx_products_filter', 'columns': ['category', 'price', 'condition', 'created_at DESC']},
                {'name': 'idx_products_search', 'columns': ['search_vector'], 'using': 'GIN'}
            ]
        },
        {
            'name': 'cart_items',
            'columns': [
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'product_id', 'type': 'UUID', 'nullable': False},
                {'name': 'quantity', 'type': 'INT8', 'nullable': False, 'default': '1', 'check': 'quantity >= 1'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['user_id', 'product_id'],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'},
                {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
            ]
        },
        {
            'name': 'user_favorites',
            'columns': [
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'product_id', 'type': 'UUID', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['user_id', 'product_id'],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'},
                {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
            ]
        },
        {
            'name': 'offers',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'product_id', 'type': 'UUID', 'nullable': False},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'offer_price', 'type': 'NUMERIC(12, 2)', 'nullable': False, 'check': 'offer_price >= 1'},
                {'name': 'message', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'",
                 'check': "status IN ('pending', 'accepted', 'rejected', 'countered', 'expired')"},
                {'name': 'counter_price', 'type': 'NUMERIC(12, 2)'},
                {'name': 'counter_message', 'type': 'TEXT'},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_offers_product', 'columns': ['product_id', 'created_at DESC']},
                {'name': 'idx_offers_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_offers_seller', 'columns': ['seller_id']},
                {'name': 'idx_offers_one_pending', 'columns': ['product_id', 'buyer_id'],
                 'unique': True, 'where': "status = 'pending'"},
                {'name': 'idx_offers_open_expiry', 'columns': ['expires_at'],
                 'where': "status IN ('pending', 'countered')"}
            ]
        },
        {
            'name': 'reviews',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'product_id', 'type': 'UUID', 'nullable': False},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'rating', 'type': 'INT8', 'nullable': False, 'check': 'rating BETWEEN 1 AND 5'},
                {'name': 'title', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'comment', 'type': 'TEXT', 'nullable': False},
                {'name': 'images', 'type': 'TEXT[]', 'nullable': False, 'default': "'{}'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_reviews_product_user', 'columns': ['product_id', 'user_id'], 'unique': True}
            ]
        }
    ],
    'triggers': [
        {
            'name': f'trg_{table}_updated_at',
            'table': table,
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'set_updated_at',
            'function_body': UPDATED_AT_FUNCTION
        }
        for table in ('users', 'cart_items', 'offers', 'reviews')
    ]
}

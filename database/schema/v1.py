"""Schema v1 - Initial marketplace schema.

This version includes tables for:
- Profiles (one per account)
- Gigs and their rating aggregates
- Orders with their lifecycle status
- Ratings (one per order)

Row changes on orders are published on the ``order_changes`` channel so the
realtime listener can fan them out to buyers and sellers.
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'profiles',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True},
                {'name': 'username', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'bio', 'type': 'TEXT'},
                {'name': 'avatar_url', 'type': 'TEXT'},
                {'name': 'total_earnings', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'gigs',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'INT8', 'nullable': False},
                {'name': 'delivery_days', 'type': 'INT4', 'nullable': False},
                {'name': 'category', 'type': 'TEXT', 'nullable': False},
                {'name': 'image_url', 'type': 'TEXT'},
                {'name': 'average_rating', 'type': 'FLOAT8', 'nullable': False, 'default': '0'},
                {'name': 'total_reviews', 'type': 'INT4', 'nullable': False, 'default': '0'},
                {'name': 'is_active', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'profiles(id)'}
            ],
            'indexes': [
                {'name': 'idx_gigs_user', 'columns': ['user_id']},
                {'name': 'idx_gigs_category', 'columns': ['category'], 'where': 'is_active'}
            ]
        },
        {
            'name': 'orders',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'gig_id', 'type': 'UUID', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'amount', 'type': 'INT8', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['buyer_id'], 'references': 'profiles(id)'},
                {'columns': ['seller_id'], 'references': 'profiles(id)'},
                {'columns': ['gig_id'], 'references': 'gigs(id)'}
            ],
            'indexes': [
                {'name': 'idx_orders_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_orders_seller', 'columns': ['seller_id']},
                {'name': 'idx_orders_gig', 'columns': ['gig_id']}
            ]
        },
        {
            'name': 'ratings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'order_id', 'type': 'UUID', 'nullable': False, 'unique': True},
                {'name': 'gig_id', 'type': 'UUID', 'nullable': False},
                {'name': 'reviewer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'rating', 'type': 'INT2', 'nullable': False},
                {'name': 'comment', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)'},
                {'columns': ['gig_id'], 'references': 'gigs(id)'},
                {'columns': ['reviewer_id'], 'references': 'profiles(id)'}
            ],
            'indexes': [
                {'name': 'idx_ratings_gig', 'columns': ['gig_id']}
            ]
        }
    ],
    'triggers': [
        {
            'name': 'trg_gigs_updated_at',
            'table': 'gigs',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'touch_gigs_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        },
        {
            'name': 'trg_orders_updated_at',
            'table': 'orders',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'touch_orders_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        },
        {
            'name': 'trg_orders_notify',
            'table': 'orders',
            'timing': 'AFTER',
            'event': 'INSERT OR UPDATE',
            'function_name': 'notify_order_change',
            'function_body': '''
                BEGIN
                    PERFORM pg_notify(
                        'order_changes',
                        json_build_object(
                            'op', TG_OP,
                            'old', CASE WHEN TG_OP = 'UPDATE' THEN row_to_json(OLD) END,
                            'new', row_to_json(NEW)
                        )::text
                    );
                    RETURN NEW;
                END;
            '''
        }
    ],
    'migrations': []
}

"""
Concrete migration steps.

Add new steps here; register them in migrations/__init__.py.
"""

from oilgas_migrator.migrations.base import MigrationStep


class CreateSchemas(MigrationStep):
    name = "create_schemas"
    statements = (
        "CREATE SCHEMA IF NOT EXISTS store",
        "CREATE SCHEMA IF NOT EXISTS migrations",
    )
    central_statements = ("CREATE SCHEMA IF NOT EXISTS auth",)


class CreateReferenceTables(MigrationStep):
    """Industry grades and pipe sizes, unique on their natural keys."""

    name = "create_reference_tables"
    statements = (
        """
        CREATE TABLE IF NOT EXISTS store.grade (
            grade VARCHAR(10) PRIMARY KEY,
            description TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS store.sizes (
            size_id SERIAL PRIMARY KEY,
            size VARCHAR(50) NOT NULL UNIQUE,
            description TEXT
        )
        """,
    )


class CreateCustomers(MigrationStep):
    name = "create_customers"
    statements = (
        """
        CREATE TABLE IF NOT EXISTS store.customers (
            customer_id SERIAL PRIMARY KEY,
            customer VARCHAR(255) NOT NULL,
            billing_address TEXT,
            billing_city VARCHAR(100),
            billing_state VARCHAR(50),
            billing_zipcode VARCHAR(20),
            contact VARCHAR(255),
            phone VARCHAR(50),
            fax VARCHAR(50),
            email VARCHAR(255),
            imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
    )


class CreateInventoryAndReceived(MigrationStep):
    """Inventory and received (work order) tables, keyed into customers, grade and sizes."""

    name = "create_inventory_and_received"
    statements = (
        """
        CREATE TABLE IF NOT EXISTS store.inventory (
            id SERIAL PRIMARY KEY,
            username VARCHAR(100),
            work_order VARCHAR(100),
            r_number VARCHAR(100),
            customer_id INTEGER REFERENCES store.customers(customer_id),
            customer VARCHAR(255),
            joints INTEGER,
            rack VARCHAR(50),
            size VARCHAR(50),
            weight DECIMAL(10,2),
            grade VARCHAR(10) REFERENCES store.grade(grade),
            connection VARCHAR(100),
            ctd VARCHAR(100),
            w_string VARCHAR(100),
            swgcc VARCHAR(100),
            color VARCHAR(50),
            customer_po VARCHAR(100),
            fletcher VARCHAR(100),
            date_in DATE,
            date_out DATE,
            well_in VARCHAR(255),
            lease_in VARCHAR(255),
            well_out VARCHAR(255),
            lease_out VARCHAR(255),
            trucking VARCHAR(100),
            trailer VARCHAR(100),
            location VARCHAR(100),
            notes TEXT,
            pcode VARCHAR(50),
            cn VARCHAR(50),
            ordered_by VARCHAR(100),
            imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS store.received (
            id SERIAL PRIMARY KEY,
            work_order VARCHAR(100),
            customer_id INTEGER REFERENCES store.customers(customer_id),
            customer VARCHAR(255),
            joints INTEGER,
            rack VARCHAR(50),
            size_id INTEGER REFERENCES store.sizes(size_id),
            size VARCHAR(50),
            weight DECIMAL(10,2),
            grade VARCHAR(10) REFERENCES store.grade(grade),
            connection VARCHAR(100),
            ctd VARCHAR(100),
            w_string VARCHAR(100),
            well VARCHAR(255),
            lease VARCHAR(255),
            ordered_by VARCHAR(100),
            notes TEXT,
            customer_po VARCHAR(100),
            date_received DATE,
            date_out DATE,
            background TEXT,
            norm VARCHAR(100),
            services TEXT,
            bill_to_id INTEGER,
            entered_by VARCHAR(100),
            when_entered TIMESTAMP,
            trucking VARCHAR(100),
            trailer VARCHAR(100),
            in_production BOOLEAN DEFAULT FALSE,
            inspected_date DATE,
            threading_date DATE,
            straighten_required BOOLEAN DEFAULT FALSE,
            excess_material BOOLEAN DEFAULT FALSE,
            complete BOOLEAN DEFAULT FALSE,
            inspected_by VARCHAR(100),
            updated_by VARCHAR(100),
            when_updated TIMESTAMP,
            imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
    )


class CreatePerformanceIndexes(MigrationStep):
    name = "create_performance_indexes"
    statements = (
        "CREATE INDEX IF NOT EXISTS idx_customers_customer_id ON store.customers(customer_id)",
        "CREATE INDEX IF NOT EXISTS idx_customers_search ON store.customers "
        "USING gin(to_tsvector('english', customer))",
        "CREATE INDEX IF NOT EXISTS idx_inventory_customer_id ON store.inventory(customer_id)",
        "CREATE INDEX IF NOT EXISTS idx_inventory_work_order ON store.inventory(work_order)",
        "CREATE INDEX IF NOT EXISTS idx_inventory_date_in ON store.inventory(date_in)",
        "CREATE INDEX IF NOT EXISTS idx_inventory_search ON store.inventory "
        "USING gin(to_tsvector('english', COALESCE(customer, '') || ' ' "
        "|| COALESCE(work_order, '') || ' ' || COALESCE(notes, '')))",
        "CREATE INDEX IF NOT EXISTS idx_received_customer_id ON store.received(customer_id)",
        "CREATE INDEX IF NOT EXISTS idx_received_work_order ON store.received(work_order)",
        "CREATE INDEX IF NOT EXISTS idx_received_date_received ON store.received(date_received)",
    )


class CreateAuthTables(MigrationStep):
    """Tenants, users and sessions. Central database only."""

    name = "create_auth_tables"
    central_only = True
    statements = (
        """
        CREATE TABLE IF NOT EXISTS auth.tenants (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(100) NOT NULL UNIQUE,
            database_type VARCHAR(50) DEFAULT 'tenant',
            database_name VARCHAR(100),
            active BOOLEAN DEFAULT true,
            settings JSONB DEFAULT '{}',
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS auth.users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) NOT NULL UNIQUE,
            password_hash VARCHAR(255) NOT NULL,
            role VARCHAR(50) NOT NULL DEFAULT 'user',
            company VARCHAR(255) NOT NULL,
            tenant_id VARCHAR(100) NOT NULL REFERENCES auth.tenants(slug),
            active BOOLEAN DEFAULT true,
            email_verified BOOLEAN DEFAULT false,
            last_login TIMESTAMP WITH TIME ZONE,
            failed_login_attempts INTEGER DEFAULT 0,
            locked_until TIMESTAMP WITH TIME ZONE,
            password_changed_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            settings JSONB DEFAULT '{}',
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS auth.sessions (
            id VARCHAR(255) PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
            tenant_id VARCHAR(100) NOT NULL REFERENCES auth.tenants(slug),
            ip_address INET,
            user_agent TEXT,
            expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            last_activity TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_users_tenant_id ON auth.users(tenant_id)",
        "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON auth.sessions(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON auth.sessions(expires_at)",
    )

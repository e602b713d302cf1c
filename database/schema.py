SCHEMA = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

-- Customer loyalty state (id doubles as the pass serial number)
ALTER TABLE public.profiles
    ADD COLUMN IF NOT EXISTS points_balance INTEGER NOT NULL DEFAULT 0 CHECK (points_balance >= 0),
    ADD COLUMN IF NOT EXISTS total_purchases INTEGER NOT NULL DEFAULT 0,
    ADD COLUMN IF NOT EXISTS redeemed_rewards JSONB NOT NULL DEFAULT '{"coffees": [], "meals": []}'::jsonb,
    ADD COLUMN IF NOT EXISTS updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW();

CREATE TABLE IF NOT EXISTS public.employees (
    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    full_name TEXT,
    role TEXT NOT NULL DEFAULT 'employee' CHECK (role IN ('employee', 'admin')),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS public.pass_registrations (
    id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
    device_library_identifier TEXT NOT NULL,
    pass_type_identifier TEXT NOT NULL,
    serial_number TEXT NOT NULL,
    push_token TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW() NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW() NOT NULL,
    UNIQUE(device_library_identifier, pass_type_identifier, serial_number)
);

CREATE INDEX IF NOT EXISTS idx_pass_registrations_device
    ON public.pass_registrations(device_library_identifier, pass_type_identifier);
CREATE INDEX IF NOT EXISTS idx_pass_registrations_serial
    ON public.pass_registrations(serial_number);

CREATE TABLE IF NOT EXISTS public.gift_cards (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    serial_number TEXT NOT NULL UNIQUE,
    recipient_name TEXT NOT NULL,
    share_token TEXT NOT NULL UNIQUE DEFAULT encode(gen_random_bytes(16), 'hex'),
    balance_mxn DECIMAL(10,2) NOT NULL DEFAULT 0,
    initial_balance_mxn DECIMAL(10,2) NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS public.transactions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    customer_id UUID NOT NULL REFERENCES public.profiles(id) ON DELETE CASCADE,
    employee_id UUID REFERENCES public.employees(id) ON DELETE SET NULL,
    type TEXT NOT NULL CHECK (type IN ('purchase', 'redemption')),
    points_change INTEGER NOT NULL DEFAULT 0,
    points_balance_after INTEGER NOT NULL,
    reward_type TEXT CHECK (reward_type IN ('coffee', 'meal')),
    reward_points_threshold INTEGER,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_transactions_customer ON public.transactions(customer_id);
"""

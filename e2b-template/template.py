"""
E2B nextjs-shadcn Template - Pre-configured sandbox for sketch-to-UI generation.

This template pre-installs Next.js 14 with TypeScript, Tailwind CSS, framer-motion,
lucide-react and the most common shadcn/ui components, so a generated component
only needs to be written to app/component.tsx before `npm run dev` serves it.
"""

from e2b import Template

APP_DIR = "/home/user/app"

# Package versions
NEXTJS_VERSION = "14.2.5"
REACT_VERSION = "18"

# Pre-installed npm packages
NEXTJS_PACKAGES = [
    # Core
    f"next@{NEXTJS_VERSION}",
    f"react@^{REACT_VERSION}",
    f"react-dom@^{REACT_VERSION}",
    "typescript@^5",
    "@types/react@^18",
    "@types/react-dom@^18",
    "@types/node@^20",

    # Styling
    "tailwindcss@^3.4",
    "tailwindcss-animate@^1.0",
    "autoprefixer@^10",
    "postcss@^8",
    "class-variance-authority@^0.7",
    "clsx@^2.1",
    "tailwind-merge@^2.3",

    # Icons & Animation
    "lucide-react@^0.378",
    "framer-motion@^11.2",
]

# shadcn/ui components installed at build time (others are added on demand)
SHADCN_COMPONENTS = [
    "button", "card", "input", "label", "textarea", "badge", "avatar",
    "dialog", "sheet", "tabs", "accordion", "alert", "separator",
    "scroll-area", "skeleton", "select", "switch", "checkbox",
    "radio-group", "dropdown-menu", "popover",
]

# Base Next.js project files
BASE_FILES = {
    "package.json": """{
  "name": "sketch-app",
  "version": "0.1.0",
  "private": true,
  "scripts": {
    "dev": "next dev -H 0.0.0.0 -p 3000",
    "build": "next build",
    "start": "next start"
  }
}""",

    "next.config.js": """/** @type {import('next').NextConfig} */
const nextConfig = {
  reactStrictMode: true,
  eslint: { ignoreDuringBuilds: true },
};

module.exports = nextConfig;
""",

    "tsconfig.json": """{
  "compilerOptions": {
    "lib": ["dom", "dom.iterable", "esnext"],
    "allowJs": true,
    "skipLibCheck": true,
    "strict": false,
    "noEmit": true,
    "esModuleInterop": true,
    "module": "esnext",
    "moduleResolution": "bundler",
    "resolveJsonModule": true,
    "isolatedModules": true,
    "jsx": "preserve",
    "incremental": true,
    "plugins": [{"name": "next"}],
    "paths": {"@/*": ["./*"]}
  },
  "include": ["next-env.d.ts", "**/*.ts", "**/*.tsx", ".next/types/**/*.ts"],
  "exclude": ["node_modules"]
}
""",

    "tailwind.config.js": """/** @type {import('tailwindcss').Config} */
module.exports = {
  darkMode: ["class"],
  content: [
    "./app/**/*.{js,ts,jsx,tsx,mdx}",
    "./components/**/*.{js,ts,jsx,tsx,mdx}",
  ],
  theme: {
    extend: {},
  },
  plugins: [require("tailwindcss-animate")],
};
""",

    "postcss.config.js": """module.exports = {
  plugins: {
    tailwindcss: {},
    autoprefixer: {},
  },
};
""",

    "components.json": """{
  "$schema": "https://ui.shadcn.com/schema.json",
  "style": "default",
  "rsc": true,
  "tsx": true,
  "tailwind": {
    "config": "tailwind.config.js",
    "css": "app/globals.css",
    "baseColor": "slate",
    "cssVariables": false
  },
  "aliases": {
    "components": "@/components",
    "utils": "@/lib/utils"
  }
}
""",

    "app/globals.css": """@tailwind base;
@tailwind components;
@tailwind utilities;
""",

    "app/layout.tsx": """import type { Metadata } from "next";
import "./globals.css";

export const metadata: Metadata = {
  title: "Sketch App",
  description: "Generated from a sketch",
};

export default function RootLayout({
  children,
}: {
  children: React.ReactNode;
}) {
  return (
    <html lang="en">
      <body>{children}</body>
    </html>
  );
}
""",

    "app/page.tsx": """import Component from "./component";
export default function Page() {
  return <Component />;
}
""",

    "app/component.tsx": """"use client";

export default function Component() {
  return (
    <div className="flex items-center justify-center min-h-screen">
      <div className="text-center">
        <h1 className="text-2xl font-bold">Ready for your component!</h1>
        <p className="text-gray-500 mt-2">Draw something and generate...</p>
      </div>
    </div>
  );
}
""",

    "lib/utils.ts": """import { type ClassValue, clsx } from "clsx";
import { twMerge } from "tailwind-merge";

export function cn(...inputs: ClassValue[]) {
  return twMerge(clsx(inputs));
}
""",
}

NODE_ENV = 'export PATH="/home/user/.local/share/fnm:$PATH" && eval "$(fnm env)"'

# Build template using fnm (Fast Node Manager) - userspace installation
template = (
    Template()
    .from_image("e2bdev/base")
    # Install fnm (Fast Node Manager) - no root required
    .run_cmd("curl -fsSL https://fnm.vercel.app/install | bash")
    # Source fnm and install Node.js 20
    .run_cmd(f"{NODE_ENV} && fnm install 20")
    # Create app directory
    .run_cmd(f"mkdir -p {APP_DIR}")
)

# Write base files
for filepath, content in BASE_FILES.items():
    # Create directory if needed
    if "/" in filepath:
        dir_path = f"{APP_DIR}/" + "/".join(filepath.split("/")[:-1])
        template = template.run_cmd(f"mkdir -p {dir_path}")

    # Write file using heredoc
    template = template.run_cmd(
        f"cat > {APP_DIR}/{filepath} << 'EOFMARKER'\n{content}\nEOFMARKER"
    )

# Install npm packages, then the shadcn components (components.json already exists)
template = template.run_cmd(
    f"{NODE_ENV} && cd {APP_DIR} && npm install {' '.join(NEXTJS_PACKAGES)}"
)
template = template.run_cmd(
    f"{NODE_ENV} && cd {APP_DIR} && npx shadcn@latest add {' '.join(SHADCN_COMPONENTS)} --yes"
)

# Set environment variables for runtime
template = template.set_envs({
    "PATH": "/home/user/.local/share/fnm/aliases/default/bin:/home/user/.local/share/fnm:$PATH",
    "WORKDIR": APP_DIR,
})
